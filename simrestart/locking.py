"""Exclusive, process-lifetime lock on the log file of a simulation.

The lock is requested without blocking.  Once acquired it is never released
explicitly: the operating system drops it when the process exits, so a
second instance of the same simulation cannot resume into the same output
set while the first one is still running.
"""
from __future__ import annotations

import errno
import logging
import os
from typing import BinaryIO, Optional

try:
    import fcntl
except ImportError:  # pragma: no cover - non-POSIX platforms
    fcntl = None  # type: ignore[assignment]

try:
    import msvcrt
except ImportError:  # pragma: no cover - non-Windows platforms
    msvcrt = None  # type: ignore[assignment]

from .errors import LockHeldError, LockUnavailableError, RestartIOError

logger = logging.getLogger(__name__)

_UNSUPPORTED_ERRNOS = frozenset(
    getattr(errno, name) for name in ("ENOSYS", "ENOLCK", "EOPNOTSUPP", "ENOTSUP") if hasattr(errno, name)
)
_HELD_ERRNOS = frozenset({errno.EACCES, errno.EAGAIN})

# msvcrt.locking needs an explicit byte count.
_WINDOWS_LOCK_BYTES = 2**31 - 1


def _lock_descriptor(fd: int) -> None:
    if fcntl is not None:
        fcntl.lockf(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        return
    if msvcrt is not None:  # pragma: no cover - Windows only
        os.lseek(fd, 0, os.SEEK_SET)
        msvcrt.locking(fd, msvcrt.LK_NBLCK, _WINDOWS_LOCK_BYTES)
        return
    raise OSError(errno.ENOSYS, "file locking is not available")


def _lock_or_raise(fh: BinaryIO, filename: str) -> None:
    try:
        _lock_descriptor(fh.fileno())
    except OSError as exc:
        if exc.errno in _UNSUPPORTED_ERRNOS:
            raise LockUnavailableError(
                "File locking is not supported on this system. Restart without appending instead."
            ) from exc
        if exc.errno in _HELD_ERRNOS:
            raise LockHeldError(f"Failed to lock: {filename}. Already running simulation?") from exc
        raise RestartIOError(f"Failed to lock: {filename}. {os.strerror(exc.errno or 0)}.") from exc


def check_not_locked(path: str) -> None:
    """Raise :class:`LockHeldError` when another process holds the lock on ``path``.

    The trial lock is dropped again when its descriptor is closed, so
    this must not be called on a file the calling process has locked itself.
    Platforms without locking pass silently.
    """

    try:
        trial = open(path, "a+b")
    except OSError as exc:
        raise RestartIOError(f"Could not open {path} to check its lock: {exc}") from exc
    with trial:
        try:
            _lock_or_raise(trial, path)
        except LockUnavailableError:
            logger.debug("Cannot check lock on %s: locking unsupported", path)


class LogFileLock:
    """Capability to lock the log file once for the rest of the process.

    The run driver owns one instance and hands it to the restart code.  It
    can be acquired a single time; the file object passed to
    :meth:`acquire` is retained so its descriptor (and therefore the lock)
    stays alive.
    """

    def __init__(self) -> None:
        self._filename: Optional[str] = None
        self._fh: Optional[BinaryIO] = None

    @property
    def held(self) -> bool:
        return self._filename is not None

    @property
    def filename(self) -> Optional[str]:
        return self._filename

    def acquire(self, fh: BinaryIO, filename: str) -> None:
        """Lock ``fh`` exclusively without blocking.

        Raises
        ------
        LockUnavailableError
            Locking is not supported by the platform or filesystem.
        LockHeldError
            Another process already holds the lock.
        RestartIOError
            Locking failed for any other reason.
        """

        if self._filename is not None:
            raise RuntimeError(f"log file lock already acquired for {self._filename!r}")
        _lock_or_raise(fh, filename)
        self._filename = filename
        self._fh = fh
        logger.debug("Acquired exclusive lock on %s", filename)


__all__ = ["LogFileLock", "check_not_locked"]
