"""Restart decision engine.

Given the requested checkpoint, the requested appending behaviour and the
files the current invocation will write, choose how the run starts:

1. no checkpoint requested, or requested but absent: new simulation;
2. checkpoint present and appending requested or allowed: check that every
   previous output file is present under its declared name, that all
   offsets were representable, that precision matches and that the
   previous part did not itself run without appending;
3. otherwise restart with a fresh ``.partNNNN`` output set.

The checks in step 2 run in a fixed order and stop at the first condition
that blocks appending; only that condition is reported.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Literal, Optional, Sequence, Tuple

from .constants import LOG_EXTENSION
from .errors import (
    CorruptCheckpointError,
    InconsistentRequestError,
    MissingOutputFilesError,
    OffsetOverflowError,
    PrecisionMismatchError,
)
from .filenames import OutputFileSet, has_part_suffix
from .io.checkpoint import read_checkpoint_header_and_output_files
from .model import (
    AppendingBehavior,
    CheckpointHeader,
    OutputFileRecord,
    OutputFileRecords,
    Precision,
    StartingBehavior,
)

logger = logging.getLogger(__name__)

CheckpointReader = Callable[[Path], Tuple[CheckpointHeader, Sequence[OutputFileRecord]]]
MissingFilesPolicy = Literal["error", "noappend"]


@dataclass(frozen=True)
class RestartDecision:
    """Outcome of :func:`choose_starting_behavior` on the decision-maker."""

    starting_behavior: StartingBehavior
    header: Optional[CheckpointHeader] = None
    output_files: OutputFileRecords = ()
    reason: Optional[str] = None

    @property
    def simulation_part(self) -> int:
        """Part counter of the checkpoint, 0 when starting fresh."""

        return self.header.simulation_part if self.header is not None else 0

    @property
    def next_simulation_part(self) -> int:
        return self.simulation_part + 1


def _missing_output_files_error(
    checkpoint_path: Path,
    output_files: Sequence[OutputFileRecord],
    expected: OutputFileSet,
) -> MissingOutputFilesError:
    present = [record.filename for record in output_files if expected.exists_as_output(record.filename)]
    missing = [record.filename for record in output_files if not expected.exists_as_output(record.filename)]
    lines = [
        f"Some output files listed in the checkpoint file {checkpoint_path} are not present or not named "
        "as the output files by the current program:",
        "Expected output files that are present:",
        *(f"  {name}" for name in present),
        "",
        "Expected output files that are not present or named differently:",
        *(f"  {name}" for name in missing),
        "",
        "To keep your simulation files safe, this simulation will not restart. Either name your output "
        "files exactly the same as the previous simulation part, or make sure all the output files are "
        "present (e.g. run from the same directory as the previous simulation part), or request new "
        "output files by restarting without appending. In the last case, you will not be able to use "
        "appending in future for this simulation.",
    ]
    return MissingOutputFilesError("\n".join(lines), present=present, missing=missing)


def _appending_blocker(
    appending: AppendingBehavior,
    checkpoint_path: Path,
    header: CheckpointHeader,
    output_files: Sequence[OutputFileRecord],
    expected: OutputFileSet,
    precision: Precision,
    missing_policy: MissingFilesPolicy,
) -> Optional[str]:
    """Return why appending cannot be done under ``AUTO``, or None if it can.

    Raises for conditions that are fatal under the requested behaviour.
    """

    num_missing = sum(1 for record in output_files if not expected.exists_as_output(record.filename))
    if num_missing:
        if appending is AppendingBehavior.APPENDING or missing_policy == "error":
            raise _missing_output_files_error(checkpoint_path, output_files, expected)
        return f"{num_missing} of {len(output_files)} output files from the previous part are missing"

    for record in output_files:
        if record.offset < 0:
            raise OffsetOverflowError(
                f"The previous run wrote a file called '{record.filename}' whose size it could not "
                "represent (larger than 2 GB without large file support). This simulation cannot be "
                "restarted with appending. Use a filesystem with large file support, or restart "
                "without appending once the output gets large enough."
            )

    log_filename = output_files[0].filename
    if header.records_precision and header.precision is not precision:
        if appending is AppendingBehavior.APPENDING:
            raise PrecisionMismatchError(
                "Cannot restart with appending because the previous simulation part used "
                f"{header.precision.value} precision which does not match the {precision.value} precision "
                "used by this build. Either use matching precision or restart without appending."
            )
        return (
            f"checkpoint precision ({header.precision.value}) differs from build precision ({precision.value})"
        )
    if has_part_suffix(log_filename):
        if appending is AppendingBehavior.APPENDING:
            raise InconsistentRequestError(
                "Cannot restart with appending because the previous simulation part did not use "
                "appending. Either do not request appending, or provide the correct checkpoint file."
            )
        return f"the previous part already wrote numbered output files ({os.path.basename(log_filename)})"
    return None


def choose_starting_behavior(
    appending: AppendingBehavior,
    checkpoint_path: Optional[Path],
    expected: OutputFileSet,
    *,
    precision: Precision = Precision.SINGLE,
    missing_policy: MissingFilesPolicy = "error",
    reader: CheckpointReader = read_checkpoint_header_and_output_files,
) -> RestartDecision:
    """Choose how the run starts from the checkpoint request and the files on disk.

    Parameters
    ----------
    appending:
        Requested appending behaviour.
    checkpoint_path:
        Checkpoint requested by the caller, or ``None`` when none was requested.
    expected:
        Files the current invocation declares.
    precision:
        Arithmetic precision of this build.
    missing_policy:
        ``"error"`` makes missing output files fatal; ``"noappend"`` falls back
        to numbered output files under :attr:`AppendingBehavior.AUTO`.
    reader:
        Checkpoint metadata reader.
    """

    if checkpoint_path is None:
        return RestartDecision(StartingBehavior.NEW_SIMULATION)

    checkpoint_path = Path(checkpoint_path)
    if not checkpoint_path.exists():
        # A checkpoint request for a file that does not exist yet means the
        # first part of a run, so scripts can always pass one.
        if appending is AppendingBehavior.APPENDING:
            raise InconsistentRequestError(
                "Could not do a restart with appending because the checkpoint file was not found. "
                "Either supply the name of the right checkpoint file or do not request appending."
            )
        logger.debug("Checkpoint %s not found; starting a new simulation", checkpoint_path)
        return RestartDecision(StartingBehavior.NEW_SIMULATION)

    header, records = reader(checkpoint_path)
    output_files: List[OutputFileRecord] = list(records)
    if not output_files:
        raise CorruptCheckpointError(
            f"The checkpoint file {checkpoint_path} or its reading is broken, as no output file "
            "information is stored in it"
        )
    if not output_files[0].is_log_file:
        raise CorruptCheckpointError(
            f"The checkpoint file {checkpoint_path} or its reading is broken, the first output file "
            f"'{output_files[0].filename}' must be a log file with extension '{LOG_EXTENSION}'"
        )

    reason: Optional[str] = "appending was not requested"
    if appending is not AppendingBehavior.NO_APPENDING:
        reason = _appending_blocker(
            appending, checkpoint_path, header, output_files, expected, precision, missing_policy
        )
        if reason is None:
            logger.info(
                "Restarting from %s (part %d) with appending to %d output files",
                checkpoint_path,
                header.simulation_part,
                len(output_files),
            )
            return RestartDecision(
                StartingBehavior.RESTART_WITH_APPENDING, header, tuple(output_files)
            )
        logger.info("Not appending to the previous output files: %s", reason)

    if appending is AppendingBehavior.APPENDING:
        raise RuntimeError("appending was requested but no blocking condition was raised")
    logger.info(
        "Restarting from %s (part %d) without appending; new output files get part %d",
        checkpoint_path,
        header.simulation_part,
        header.simulation_part + 1,
    )
    return RestartDecision(
        StartingBehavior.RESTART_WITHOUT_APPENDING, header, tuple(output_files), reason
    )


__all__ = [
    "RestartDecision",
    "CheckpointReader",
    "MissingFilesPolicy",
    "choose_starting_behavior",
]
