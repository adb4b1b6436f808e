"""Fixed values shared by the restart subsystem.

File format markers, digest sizes and naming conventions live here so the
checkpoint reader, the decision engine and the verifier agree on them.
"""
from __future__ import annotations

from typing import Dict

# Extension that identifies the log file; it must be the first output record.
LOG_EXTENSION: str = ".log"

# Checkpoint format version from which the arithmetic precision is recorded.
PRECISION_RECORDED_FROM_VERSION: int = 13

# Current checkpoint metadata format version written by this package.
CHECKPOINT_FILE_VERSION: int = 13

# MD5 digest length in bytes.
CHECKSUM_DIGEST_SIZE: int = 16

# Offset value recorded when the writer could not represent the file position.
UNREPRESENTABLE_OFFSET: int = -1

# Checksum size recorded when no checksum was computed.
NO_CHECKSUM: int = -1

# Read size used while hashing output files.
CHECKSUM_CHUNK_BYTES: int = 1024 * 1024

# Suffix inserted before the extension of every output file on a
# non-appending restart.
PART_SUFFIX_FORMAT: str = ".part%04d"

# Highest backup number tried before refusing to move an existing log aside.
MAX_BACKUPS: int = 99

# Rank of the decision-maker inside a simulation communicator.
MASTER_RANK: int = 0

# Default file extensions for output file roles.
ROLE_EXTENSIONS: Dict[str, str] = {
    "log": ".log",
    "trajectory": ".trr",
    "compressed_trajectory": ".xtc",
    "energy": ".edr",
    "confout": ".gro",
    "checkpoint": ".cpt",
    "series": ".parquet",
    "summary": ".json",
}

__all__ = [
    "LOG_EXTENSION",
    "PRECISION_RECORDED_FROM_VERSION",
    "CHECKPOINT_FILE_VERSION",
    "CHECKSUM_DIGEST_SIZE",
    "UNREPRESENTABLE_OFFSET",
    "NO_CHECKSUM",
    "CHECKSUM_CHUNK_BYTES",
    "PART_SUFFIX_FORMAT",
    "MAX_BACKUPS",
    "MASTER_RANK",
    "ROLE_EXTENSIONS",
]
