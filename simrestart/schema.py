"""Configuration schema for restart handling.

Pydantic models mirroring the YAML configuration consumed by
:mod:`simrestart.run`.  A minimal file only needs the output files::

    outputs:
      deffnm: md
      files:
        - role: log
        - role: energy
    restart:
      checkpoint: state.cpt
      appending: auto
"""
from __future__ import annotations

from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from .constants import ROLE_EXTENSIONS
from .errors import ConfigurationError
from .filenames import OutputFileSet, OutputFileSpec
from .model import AppendingBehavior, Precision


class Restart(BaseModel):
    """Checkpoint request and appending controls."""

    checkpoint: Optional[Path] = Field(
        None,
        description="Checkpoint file to restart from; if it does not exist a new simulation starts.",
    )
    appending: Literal["auto", "append", "noappend"] = Field(
        "auto",
        description="Append to the previous output files ('append'), never append ('noappend') or decide ('auto').",
    )
    precision: Literal["single", "double"] = Field(
        "single",
        description="Arithmetic precision of this build; appending across precisions is refused.",
    )
    on_missing_output_files: Literal["error", "noappend"] = Field(
        "error",
        description="Under 'auto', abort ('error') or switch to numbered output files ('noappend') when previous outputs are missing.",
    )
    checkpoint_format: Optional[Literal["json", "pickle"]] = Field(
        None,
        description="Checkpoint metadata format; inferred from the file suffix when omitted.",
    )

    @property
    def appending_behavior(self) -> AppendingBehavior:
        return AppendingBehavior(self.appending)

    @property
    def build_precision(self) -> Precision:
        return Precision(self.precision)


class OutputFile(BaseModel):
    """A file written by the simulation, identified by its role."""

    role: str = Field(..., min_length=1, description="Role of the file, e.g. 'log', 'energy', 'trajectory'.")
    path: Optional[Path] = Field(None, description="Explicit file name; derived from outputs.deffnm when omitted.")
    is_output: bool = Field(True, description="False for files that are only read.")


class Outputs(BaseModel):
    """Output file set of the current invocation."""

    deffnm: Optional[str] = Field(None, description="Default file name stem for files without an explicit path.")
    directory: Path = Field(Path("."), description="Directory of files named through deffnm.")
    files: List[OutputFile] = Field(
        default_factory=lambda: [OutputFile(role="log")],
        description="Declared files; exactly one must have role 'log'.",
    )
    max_offset: Optional[int] = Field(
        None,
        gt=0,
        description="Largest offset the checkpoint writer may record; larger files block appending.",
    )

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Outputs":
        roles = [item.role for item in self.files]
        if roles.count("log") != 1:
            raise ConfigurationError("outputs.files must contain exactly one entry with role 'log'")
        if len(set(roles)) != len(roles):
            raise ConfigurationError(f"outputs.files roles must be unique, got {roles}")
        stem = self.deffnm or "sim"
        for item in self.files:
            if item.path is None:
                extension = ROLE_EXTENSIONS.get(item.role, f".{item.role}")
                item.path = self.directory / f"{stem}{extension}"
        log_path = next(item.path for item in self.files if item.role == "log")
        if log_path is not None and log_path.suffix != ROLE_EXTENSIONS["log"]:
            raise ConfigurationError(f"log file {log_path} must have extension {ROLE_EXTENSIONS['log']!r}")
        return self

    def to_file_set(self) -> OutputFileSet:
        return OutputFileSet(
            OutputFileSpec(role=item.role, path=Path(item.path), is_output=item.is_output)
            for item in self.files
            if item.path is not None
        )


class Parallel(BaseModel):
    """Process layout of the run."""

    use_mpi: bool = Field(False, description="Coordinate through MPI.COMM_WORLD (requires mpi4py).")
    n_simulations: int = Field(1, ge=1, description="Number of simulations run side by side (multi-simulation).")

    @model_validator(mode="after")
    def _multisim_requires_mpi(self) -> "Parallel":
        if self.n_simulations > 1 and not self.use_mpi:
            raise ConfigurationError("parallel.n_simulations > 1 requires parallel.use_mpi=true")
        return self


class IO(BaseModel):
    """Console and summary output of the run driver."""

    quiet: bool = Field(False, description="Suppress INFO logs and Python warnings.")
    summary: Optional[Path] = Field(None, description="Write a JSON summary of the restart decision here.")


class Config(BaseModel):
    """Root configuration object."""

    restart: Restart = Field(default_factory=Restart)
    outputs: Outputs = Field(default_factory=Outputs)
    parallel: Parallel = Field(default_factory=Parallel)
    io: IO = Field(default_factory=IO)


__all__ = [
    "Restart",
    "OutputFile",
    "Outputs",
    "Parallel",
    "IO",
    "Config",
]
