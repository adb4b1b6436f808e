"""Plain data records exchanged between the restart components.

The checkpoint reader produces a :class:`CheckpointHeader` and an ordered
sequence of :class:`OutputFileRecord` entries.  The decision engine consumes
them together with the requested :class:`AppendingBehavior` and produces a
:class:`StartingBehavior`, which the coordinator makes binding for every
process of a simulation.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Tuple

from .constants import (
    CHECKSUM_DIGEST_SIZE,
    LOG_EXTENSION,
    NO_CHECKSUM,
    PRECISION_RECORDED_FROM_VERSION,
)


class AppendingBehavior(enum.Enum):
    """Requested handling of existing output files (set by the caller)."""

    AUTO = "auto"
    APPENDING = "append"
    NO_APPENDING = "noappend"

    @classmethod
    def from_flag(cls, append: Optional[bool]) -> "AppendingBehavior":
        """Map a tri-state ``--append/--no-append`` flag onto a behaviour."""

        if append is None:
            return cls.AUTO
        return cls.APPENDING if append else cls.NO_APPENDING


class StartingBehavior(enum.IntEnum):
    """How the run starts; authoritative for the whole simulation once chosen."""

    NEW_SIMULATION = 0
    RESTART_WITH_APPENDING = 1
    RESTART_WITHOUT_APPENDING = 2

    @property
    def is_restart(self) -> bool:
        return self is not StartingBehavior.NEW_SIMULATION


class Precision(enum.Enum):
    """Floating-point precision of a build."""

    SINGLE = "single"
    DOUBLE = "double"

    @classmethod
    def from_double_flag(cls, double_precision: bool) -> "Precision":
        return cls.DOUBLE if double_precision else cls.SINGLE


@dataclass(frozen=True)
class CheckpointHeader:
    """Bookkeeping read from the head of a checkpoint file."""

    simulation_part: int
    double_precision: bool
    file_version: int

    @property
    def precision(self) -> Precision:
        return Precision.from_double_flag(self.double_precision)

    @property
    def records_precision(self) -> bool:
        """True when the format version is recent enough to trust ``double_precision``."""

        return self.file_version >= PRECISION_RECORDED_FROM_VERSION


@dataclass(frozen=True)
class OutputFileRecord:
    """Position and checksum of one output file at checkpoint time.

    ``offset`` is the valid end of the file; a negative value means the
    writer could not represent it.  ``checksum`` covers the first
    ``checksum_size`` bytes, and ``checksum_size == -1`` means no checksum
    was computed.
    """

    filename: str
    offset: int
    checksum: bytes = b""
    checksum_size: int = NO_CHECKSUM

    def __post_init__(self) -> None:
        if self.checksum_size != NO_CHECKSUM:
            if self.checksum_size < 0:
                raise ValueError(f"checksum_size must be -1 or non-negative, got {self.checksum_size}")
            if len(self.checksum) != CHECKSUM_DIGEST_SIZE:
                raise ValueError(
                    f"checksum for {self.filename!r} must be {CHECKSUM_DIGEST_SIZE} bytes, "
                    f"got {len(self.checksum)}"
                )

    @property
    def has_checksum(self) -> bool:
        return self.checksum_size != NO_CHECKSUM

    @property
    def is_log_file(self) -> bool:
        return self.filename.endswith(LOG_EXTENSION)


OutputFileRecords = Tuple[OutputFileRecord, ...]


__all__ = [
    "AppendingBehavior",
    "StartingBehavior",
    "Precision",
    "CheckpointHeader",
    "OutputFileRecord",
    "OutputFileRecords",
]
