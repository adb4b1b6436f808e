"""Naming rules for the output files of a simulation part."""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple, Union

from .constants import LOG_EXTENSION, MAX_BACKUPS, PART_SUFFIX_FORMAT

PathLike = Union[str, os.PathLike]

_PART_SUFFIX_RE = re.compile(r"\.part\d{4}$")


def part_suffix(simulation_part: int) -> str:
    """Return the ``.partNNNN`` suffix for ``simulation_part``."""

    if simulation_part < 0:
        raise ValueError(f"simulation part must be non-negative, got {simulation_part}")
    return PART_SUFFIX_FORMAT % simulation_part


def has_part_suffix(filename: PathLike) -> bool:
    """True when the name (extension stripped) ends in ``.partNNNN``."""

    stem = Path(os.fspath(filename)).stem
    return _PART_SUFFIX_RE.search(stem) is not None


def add_part_suffix(filename: PathLike, suffix: str) -> Path:
    """Insert ``suffix`` between the stem and the extension of ``filename``."""

    path = Path(os.fspath(filename))
    return path.with_name(f"{path.stem}{suffix}{path.suffix}")


def backup_name(filename: PathLike, max_backups: int = MAX_BACKUPS) -> Optional[Path]:
    """Return the first free ``#name.N#`` beside ``filename``, or None when all are taken."""

    path = Path(os.fspath(filename))
    for number in range(1, max_backups + 1):
        candidate = path.with_name(f"#{path.name}.{number}#")
        if not candidate.exists():
            return candidate
    return None


@dataclass(frozen=True)
class OutputFileSpec:
    """One file the current invocation declares it will write (or read)."""

    role: str
    path: Path
    is_output: bool = True

    @property
    def name(self) -> str:
        return os.fspath(self.path)


class OutputFileSet:
    """Ordered collection of the files declared by the current invocation."""

    def __init__(self, specs: Iterable[OutputFileSpec]) -> None:
        self._specs: Tuple[OutputFileSpec, ...] = tuple(specs)
        logs = [spec for spec in self._specs if spec.role == "log"]
        if len(logs) != 1:
            raise ValueError(f"exactly one output file with role 'log' is required, got {len(logs)}")
        if not logs[0].name.endswith(LOG_EXTENSION):
            raise ValueError(f"log file {logs[0].name!r} must have extension {LOG_EXTENSION!r}")

    def __iter__(self) -> Iterator[OutputFileSpec]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def __repr__(self) -> str:
        return f"OutputFileSet({[spec.name for spec in self._specs]!r})"

    @property
    def log_file(self) -> OutputFileSpec:
        return next(spec for spec in self._specs if spec.role == "log")

    def outputs(self) -> List[OutputFileSpec]:
        return [spec for spec in self._specs if spec.is_output]

    def by_role(self, role: str) -> Optional[OutputFileSpec]:
        for spec in self._specs:
            if spec.role == role:
                return spec
        return None

    def declares_output(self, filename: str) -> bool:
        """True when ``filename`` is exactly the name of a declared output file."""

        return any(spec.name == filename for spec in self.outputs())

    def exists_as_output(self, filename: str) -> bool:
        """True when ``filename`` is a declared output file that exists on disk."""

        return self.declares_output(filename) and os.path.exists(filename)

    def with_part_suffix(self, simulation_part: int) -> "OutputFileSet":
        """Return a copy in which every output file carries ``.partNNNN``."""

        suffix = part_suffix(simulation_part)
        return OutputFileSet(
            replace(spec, path=add_part_suffix(spec.path, suffix)) if spec.is_output else spec
            for spec in self._specs
        )

    def as_mapping(self) -> dict[str, str]:
        return {spec.role: spec.name for spec in self._specs}


__all__ = [
    "part_suffix",
    "has_part_suffix",
    "add_part_suffix",
    "backup_name",
    "OutputFileSpec",
    "OutputFileSet",
]
