"""The open log file handed back to the run driver."""
from __future__ import annotations

import logging
import os
import warnings
from pathlib import Path
from typing import BinaryIO, Optional

from .constants import MAX_BACKUPS
from .errors import LockUnavailableError, RestartError, RestartIOError
from .filenames import backup_name
from .locking import LogFileLock, check_not_locked
from .warnings import LockingWarning

logger = logging.getLogger(__name__)


class LogFileHandle:
    """Binary log file kept open (and locked) for the lifetime of the run."""

    def __init__(self, path: Path, fh: BinaryIO, lock: Optional[LogFileLock] = None) -> None:
        self.path = Path(path)
        self._fh = fh
        self._lock = lock

    @property
    def file(self) -> BinaryIO:
        return self._fh

    @property
    def locked(self) -> bool:
        return self._lock is not None and self._lock.held and self._lock.filename == os.fspath(self.path)

    @property
    def closed(self) -> bool:
        return self._fh.closed

    def fileno(self) -> int:
        return self._fh.fileno()

    def write(self, text: str) -> None:
        self._fh.write(text.encode("utf-8"))
        self._fh.flush()

    def close(self) -> None:
        """Close the file; only the run driver calls this, at shutdown or on failure."""

        if not self._fh.closed:
            self._fh.close()

    def __repr__(self) -> str:
        return f"LogFileHandle({os.fspath(self.path)!r}, locked={self.locked})"


def _back_up(path: Path, *, check_lock: bool) -> Path:
    if check_lock:
        check_not_locked(os.fspath(path))
    backup = backup_name(path)
    if backup is None:
        raise RestartIOError(
            f"Will not make more than {MAX_BACKUPS} backups of '{path}'; remove old #{path.name}.N# files"
        )
    try:
        os.replace(path, backup)
    except OSError as exc:
        raise RestartIOError(f"Could not back up '{path}' to '{backup}': {exc}") from exc
    logger.info("Backed up %s to %s", path, backup)
    return backup


def open_log_file(path: Path, *, appending: bool, lock: Optional[LogFileLock] = None) -> LogFileHandle:
    """Open the log file of the current simulation part.

    With ``appending`` the existing file is opened read/write and left
    untouched; locking, verification and truncation are done by
    :func:`simrestart.integrity.prepare_for_appending`.  Otherwise a
    non-empty file of the same name is first moved aside to ``#name.N#``
    (unless another process holds its lock), a fresh file is created and
    then locked when a lock capability is given.  A platform without
    locking only warns here because the new file has no content to protect.
    """

    path = Path(path)
    try:
        if appending:
            fh = path.open("r+b")
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            if path.exists() and path.stat().st_size > 0:
                _back_up(path, check_lock=lock is not None)
            fh = path.open("a+b")
    except RestartError:
        raise
    except OSError as exc:
        raise RestartIOError(f"Could not open log file '{path}': {exc}") from exc
    handle = LogFileHandle(path, fh, lock)
    if appending or lock is None:
        return handle

    try:
        lock.acquire(fh, os.fspath(path))
    except LockUnavailableError as exc:
        logger.warning("Log file %s is not locked: %s", path, exc)
        warnings.warn(str(exc), LockingWarning, stacklevel=2)
    except Exception:
        fh.close()
        raise
    return handle


__all__ = ["LogFileHandle", "open_log_file"]
