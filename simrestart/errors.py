"""Custom exceptions for the :mod:`simrestart` package."""
from __future__ import annotations

from typing import Sequence


class RestartError(Exception):
    """Base exception for restart handling errors."""


class ConfigurationError(RestartError, ValueError):
    """Invalid configuration file or parameter values."""


class InconsistentRequestError(RestartError, ValueError):
    """The requested restart options contradict each other or the files on disk."""


class CorruptCheckpointError(RestartError, ValueError):
    """Checkpoint metadata is malformed, empty or could not be parsed."""


class MissingOutputFilesError(RestartError, ValueError):
    """Output files listed in the checkpoint are absent or named differently."""

    def __init__(self, message: str, *, present: Sequence[str] = (), missing: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.present = tuple(present)
        self.missing = tuple(missing)


class OffsetOverflowError(RestartError, ValueError):
    """A recorded file offset could not be represented by the previous run."""


class PrecisionMismatchError(RestartError, ValueError):
    """Checkpoint precision differs from the precision of this build."""


class IntegrityError(RestartError, RuntimeError):
    """An output file no longer matches the checksum stored in the checkpoint."""


class RestartIOError(RestartError, OSError):
    """Opening, seeking or truncating a file failed."""


class LockError(RestartError, OSError):
    """Base class for log-file locking failures."""


class LockUnavailableError(LockError):
    """File locking is not supported on this platform or filesystem."""


class LockHeldError(LockError):
    """Another process already holds the log-file lock."""


class PeerFailureError(RestartError, RuntimeError):
    """Raised on processes that were not the origin of a collective failure."""


__all__ = [
    "RestartError",
    "ConfigurationError",
    "InconsistentRequestError",
    "CorruptCheckpointError",
    "MissingOutputFilesError",
    "OffsetOverflowError",
    "PrecisionMismatchError",
    "IntegrityError",
    "RestartIOError",
    "LockError",
    "LockUnavailableError",
    "LockHeldError",
    "PeerFailureError",
]
