"""Output helper utilities for run metadata.

All functions ensure that destination directories are created when
necessary.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

if TYPE_CHECKING:  # pragma: no cover
    from ..coordinator import RestartOutcome


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def restart_summary(outcome: RestartOutcome, *, checkpoint: Optional[Path] = None) -> Dict[str, Any]:
    """Return a JSON-serialisable description of a restart outcome."""

    summary: Dict[str, Any] = {
        "starting_behavior": outcome.starting_behavior.name,
        "checkpoint": str(checkpoint) if checkpoint is not None else None,
        "simulation_part": outcome.simulation_part,
        "part_mismatch": outcome.part_mismatch,
        "reason": outcome.reason,
    }
    if outcome.output_files is not None:
        summary["output_files"] = outcome.output_files.as_mapping()
    if outcome.log_handle is not None:
        summary["log_file"] = str(outcome.log_handle.path)
        summary["log_locked"] = outcome.log_handle.locked
    return summary


def write_summary(summary: Mapping[str, Any], path: Path) -> None:
    """Write a summary dictionary to ``path`` as indented JSON."""

    _ensure_parent(path)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(summary, fh, indent=2, sort_keys=True)


__all__ = ["restart_summary", "write_summary"]
