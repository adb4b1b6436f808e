"""Checkpoint metadata reader and writer.

Only the bookkeeping needed to decide how a run restarts is handled here:
the simulation part counter, the precision flag, the format version and the
positions/checksums of the output files.  Physical state is serialised by
the simulation kernel and is out of scope.
"""
from __future__ import annotations

import json
import logging
import pickle
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple, Union

from ..constants import CHECKPOINT_FILE_VERSION
from ..errors import CorruptCheckpointError, RestartIOError
from ..model import CheckpointHeader, OutputFileRecord

logger = logging.getLogger(__name__)

CheckpointFormat = Union[str, None]

_PICKLE_SUFFIXES = {".pkl", ".pickle"}


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _resolve_format(path: Path, fmt: CheckpointFormat) -> str:
    if fmt not in (None, ""):
        fmt_normalized = str(fmt).lower()
    elif path.suffix.lower() in _PICKLE_SUFFIXES:
        fmt_normalized = "pickle"
    else:
        fmt_normalized = "json"
    if fmt_normalized not in {"json", "pickle"}:
        raise ValueError(f"Unsupported checkpoint format: {fmt}")
    return fmt_normalized


def _record_to_payload(record: OutputFileRecord, *, binary: bool) -> Dict[str, Any]:
    return {
        "filename": record.filename,
        "offset": record.offset,
        "checksum": record.checksum if binary else record.checksum.hex(),
        "checksum_size": record.checksum_size,
    }


def _record_from_payload(item: Any, *, binary: bool) -> OutputFileRecord:
    if not isinstance(item, dict):
        raise TypeError(f"output file entry must be a mapping, got {type(item).__name__}")
    checksum_raw = item.get("checksum", b"" if binary else "")
    checksum = bytes(checksum_raw) if binary else bytes.fromhex(str(checksum_raw))
    return OutputFileRecord(
        filename=str(item["filename"]),
        offset=int(item["offset"]),
        checksum=checksum,
        checksum_size=int(item["checksum_size"]),
    )


def save_checkpoint_metadata(
    path: Path,
    header: CheckpointHeader,
    output_files: Sequence[OutputFileRecord],
    fmt: CheckpointFormat = None,
) -> Path:
    """Serialise a checkpoint header and its output file records to disk."""

    path = Path(path)
    fmt_normalized = _resolve_format(path, fmt)
    binary = fmt_normalized == "pickle"
    payload = {
        "simulation_part": header.simulation_part,
        "double_precision": header.double_precision,
        "file_version": header.file_version,
        "output_files": [_record_to_payload(record, binary=binary) for record in output_files],
    }
    _ensure_parent(path)
    if binary:
        with path.open("wb") as fh:
            pickle.dump(payload, fh)
    else:
        with path.open("w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2)
    logger.debug("Wrote checkpoint metadata %s (part=%d, %d output files)", path, header.simulation_part, len(output_files))
    return path


def read_checkpoint_header_and_output_files(
    path: Path,
    fmt: CheckpointFormat = None,
) -> Tuple[CheckpointHeader, List[OutputFileRecord]]:
    """Load the header and the ordered output file records of a checkpoint.

    Raises
    ------
    RestartIOError
        The file exists but cannot be opened for reading.
    CorruptCheckpointError
        The content cannot be parsed or misses required fields.
    """

    path = Path(path)
    fmt_normalized = _resolve_format(path, fmt)
    binary = fmt_normalized == "pickle"
    try:
        if binary:
            with path.open("rb") as fh:
                payload = pickle.load(fh)
        else:
            with path.open("r", encoding="utf-8") as fh:
                payload = json.load(fh)
    except (pickle.UnpicklingError, EOFError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise CorruptCheckpointError(f"Checkpoint file '{path}' could not be parsed: {exc}") from exc
    except OSError as exc:
        raise RestartIOError(
            f"Checkpoint file '{path}' was found but could not be opened for reading. "
            "Check the file permissions."
        ) from exc

    try:
        header = CheckpointHeader(
            simulation_part=int(payload["simulation_part"]),
            double_precision=bool(payload["double_precision"]),
            file_version=int(payload.get("file_version", CHECKPOINT_FILE_VERSION)),
        )
        entries = payload["output_files"]
        if not isinstance(entries, list):
            raise TypeError("output_files must be a list")
        records = [_record_from_payload(item, binary=binary) for item in entries]
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise CorruptCheckpointError(f"Checkpoint file '{path}' has malformed metadata: {exc}") from exc
    return header, records


__all__ = [
    "save_checkpoint_metadata",
    "read_checkpoint_header_and_output_files",
]
