"""Output-file integrity checks for restarts with appending.

Every output file listed in a checkpoint carries an MD5 digest of its first
``checksum_size`` bytes.  Before appending we check that each file still
matches that digest, so we never truncate a file that was replaced or
edited, and then truncate it to the offset recorded at checkpoint time,
which discards frames written after the checkpoint.
"""
from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
from typing import BinaryIO, Optional, Sequence, Tuple, Union

from .constants import CHECKSUM_CHUNK_BYTES, UNREPRESENTABLE_OFFSET
from .errors import IntegrityError, RestartIOError
from .locking import LogFileLock
from .logfile import LogFileHandle
from .model import OutputFileRecord

logger = logging.getLogger(__name__)


def compute_checksum(fh: BinaryIO, size: int) -> Tuple[bytes, int]:
    """Return (MD5 digest, bytes read) over the first ``size`` bytes of ``fh``."""

    hasher = hashlib.md5(usedforsecurity=False)
    fh.seek(0)
    remaining = max(int(size), 0)
    total = 0
    while remaining > 0:
        chunk = fh.read(min(CHECKSUM_CHUNK_BYTES, remaining))
        if not chunk:
            break
        hasher.update(chunk)
        total += len(chunk)
        remaining -= len(chunk)
    return hasher.digest(), total


def verify_output_file(fh: BinaryIO, record: OutputFileRecord) -> None:
    """Check that ``fh`` matches the checksum stored in ``record``.

    A record without checksum (``checksum_size == -1``) always passes.
    """

    if not record.has_checksum:
        return
    digest, nread = compute_checksum(fh, record.checksum_size)
    if nread != record.checksum_size:
        raise IntegrityError(
            f"Can't read {record.checksum_size} bytes of '{record.filename}' to compute checksum. "
            "The file has been replaced or its contents have been modified. "
            "Cannot do appending because of this condition."
        )
    if digest != record.checksum:
        logger.debug("chksum for %s: %s (expected %s)", record.filename, digest.hex(), record.checksum.hex())
        raise IntegrityError(
            f"Checksum wrong for '{record.filename}'. The file has been replaced or its contents "
            "have been modified. Cannot do appending because of this condition."
        )


def truncate_output_file(target: Union[str, os.PathLike, BinaryIO], offset: int) -> None:
    """Truncate a path or an open binary file to ``offset`` bytes.

    Open files are left positioned at the new end.
    """

    if offset < 0:
        raise ValueError(f"cannot truncate to negative offset {offset}")
    name = os.fspath(target) if isinstance(target, (str, os.PathLike)) else getattr(target, "name", "<file>")
    try:
        if isinstance(target, (str, os.PathLike)):
            os.truncate(target, offset)
        else:
            target.flush()
            target.truncate(offset)
            target.seek(offset)
    except OSError as exc:
        raise RestartIOError(
            f"Truncation of file {name} failed. Cannot do appending because of this failure."
        ) from exc


def compute_file_position(path: Path, *, max_offset: Optional[int] = None) -> OutputFileRecord:
    """Describe the current end of ``path`` as an :class:`OutputFileRecord`.

    Offsets larger than ``max_offset`` are recorded as unrepresentable, which
    later blocks appending to that output set.
    """

    path = Path(path)
    name = os.fspath(path)
    size = path.stat().st_size
    if max_offset is not None and size > max_offset:
        logger.warning("Output file %s is larger than %d bytes; its offset cannot be recorded", name, max_offset)
        return OutputFileRecord(filename=name, offset=UNREPRESENTABLE_OFFSET)
    if size == 0:
        return OutputFileRecord(filename=name, offset=0)
    with path.open("rb") as fh:
        digest, nread = compute_checksum(fh, size)
    return OutputFileRecord(filename=name, offset=size, checksum=digest, checksum_size=nread)


def prepare_for_appending(
    output_files: Sequence[OutputFileRecord],
    log_handle: LogFileHandle,
    lock: LogFileLock,
) -> None:
    """Lock the log, verify every output file, then truncate them all.

    The log file comes first in ``output_files`` and is already open through
    ``log_handle``; it is locked before its checksum is computed so the lock
    is never lifted between verification and the rest of the run.  Nothing
    is truncated until every file has passed, so a failed check leaves all
    files as they were.
    """

    log_record = output_files[0]
    lock.acquire(log_handle.file, log_record.filename)
    verify_output_file(log_handle.file, log_record)
    for record in output_files[1:]:
        try:
            fh = open(record.filename, "r+b")
        except OSError as exc:
            raise RestartIOError(f"Could not open output file '{record.filename}' for checking: {exc}") from exc
        with fh:
            verify_output_file(fh, record)

    truncate_output_file(log_handle.file, log_record.offset)
    log_handle.file.seek(0, os.SEEK_END)
    for record in output_files[1:]:
        truncate_output_file(record.filename, record.offset)
    logger.debug(
        "Verified and truncated %d output files: %s",
        len(output_files),
        ", ".join(f"{record.filename}@{record.offset}" for record in output_files),
    )


__all__ = [
    "compute_checksum",
    "verify_output_file",
    "truncate_output_file",
    "compute_file_position",
    "prepare_for_appending",
]
