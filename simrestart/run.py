"""Run driver: load the configuration and apply the restart decision.

Usage::

    simrestart --config run.yml --cpi state.cpt
    mpirun -n 8 simrestart --config run.yml --cpi state.cpt --mpi --multisim 2
"""
from __future__ import annotations

import argparse
import datetime as dt
import functools
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from . import config_utils
from .comm import ProcessGroup, build_process_group, serial_process_group
from .constants import CHECKPOINT_FILE_VERSION
from .coordinator import RestartOutcome, decide_and_prepare_restart
from .errors import ConfigurationError, RestartError
from .integrity import compute_file_position
from .io import writer
from .io.checkpoint import read_checkpoint_header_and_output_files, save_checkpoint_metadata
from .locking import LogFileLock
from .model import AppendingBehavior, CheckpointHeader, Precision, StartingBehavior
from .schema import Config

logger = logging.getLogger(__name__)


def load_config(
    path: Path,
    overrides: Optional[Sequence[str]] = None,
    *,
    values: Optional[Mapping[str, Any]] = None,
) -> Config:
    """Load a YAML configuration file into a :class:`Config` instance.

    ``overrides`` are ``PATH=VALUE`` strings parsed like YAML scalars;
    ``values`` maps dotted paths to already typed values (command line
    options) and is applied last.
    """

    from ruamel.yaml import YAML

    yaml = YAML(typ="safe")
    source_path = Path(path).resolve()
    with source_path.open("r", encoding="utf-8") as fh:
        data = yaml.load(fh)
    if data is None:
        data = {}
    if (overrides or values) and not isinstance(data, dict):
        raise TypeError("Configuration overrides require the YAML root to be a mapping")
    if overrides:
        config_utils.apply_overrides_dict(data, overrides)
    for dotted_key, value in (values or {}).items():
        config_utils.set_dotted(data, dotted_key, value)
    return Config(**data)


def _process_group(cfg: Config) -> ProcessGroup:
    if cfg.parallel.use_mpi:
        return build_process_group(cfg.parallel.n_simulations)
    return serial_process_group()


def _summary_path(base: Path, group: ProcessGroup) -> Path:
    if not group.is_multisim:
        return base
    return base.with_name(f"{base.stem}.sim{group.simulation_index}{base.suffix}")


def _log_banner(outcome: RestartOutcome, checkpoint: Optional[Path]) -> str:
    stamp = dt.datetime.now(dt.timezone.utc).replace(microsecond=0).isoformat()
    if not outcome.starting_behavior.is_restart:
        return f"Started new simulation at {stamp}\n"
    part = (outcome.simulation_part or 0) + 1
    mode = "with" if outcome.starting_behavior is StartingBehavior.RESTART_WITH_APPENDING else "without"
    return f"Restarted from {checkpoint} {mode} appending as part {part} at {stamp}\n"


def run_restart(
    cfg: Config,
    *,
    group: Optional[ProcessGroup] = None,
    lock: Optional[LogFileLock] = None,
) -> RestartOutcome:
    """Decide the starting behaviour for ``cfg`` on every process of ``group``.

    The returned log handle (masters only) must be kept open for as long as
    the simulation runs.
    """

    group = group if group is not None else _process_group(cfg)
    lock = lock if lock is not None else LogFileLock()
    checkpoint = cfg.restart.checkpoint
    outcome = decide_and_prepare_restart(
        cfg.restart.appending_behavior,
        checkpoint,
        cfg.outputs.to_file_set(),
        group=group,
        precision=cfg.restart.build_precision,
        lock=lock,
        missing_policy=cfg.restart.on_missing_output_files,
        reader=functools.partial(read_checkpoint_header_and_output_files, fmt=cfg.restart.checkpoint_format),
    )
    if outcome.log_handle is not None:
        outcome.log_handle.write(_log_banner(outcome, checkpoint))
    if cfg.io.summary is not None and group.is_master:
        writer.write_summary(
            writer.restart_summary(outcome, checkpoint=checkpoint),
            _summary_path(cfg.io.summary, group),
        )
    return outcome


def write_restart_checkpoint(
    cfg: Config,
    outcome: RestartOutcome,
    path: Optional[Path] = None,
) -> Path:
    """Record the current positions of the output files in checkpoint metadata.

    Called on the master at checkpoint time so the next part can append.
    The log file is recorded first; declared outputs that have not been
    created yet are left out.
    """

    if outcome.output_files is None:
        raise RuntimeError("checkpoint metadata is written by the master process only")
    target = path if path is not None else cfg.restart.checkpoint
    if target is None:
        raise ConfigurationError("no checkpoint path given and restart.checkpoint is not set")
    files = outcome.output_files
    ordered = [files.log_file] + [spec for spec in files.outputs() if spec.role != "log"]
    records = [
        compute_file_position(spec.path, max_offset=cfg.outputs.max_offset)
        for spec in ordered
        if spec.path.exists()
    ]
    header = CheckpointHeader(
        simulation_part=(outcome.simulation_part or 0) + 1,
        double_precision=cfg.restart.build_precision is Precision.DOUBLE,
        file_version=CHECKPOINT_FILE_VERSION,
    )
    return save_checkpoint_metadata(target, header, records, fmt=cfg.restart.checkpoint_format)


def main(argv: Optional[List[str]] = None) -> None:
    """Command line entry point."""

    parser = argparse.ArgumentParser(description="Decide how a simulation restarts from a checkpoint")
    parser.add_argument("--config", type=Path, required=True, help="Path to YAML configuration")
    parser.add_argument("--cpi", type=Path, help="Checkpoint file to restart from (overrides restart.checkpoint)")
    parser.add_argument(
        "--append",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Force (--append) or forbid (--no-append) appending to the previous output files.",
    )
    parser.add_argument("--mpi", action="store_true", help="Coordinate all processes of MPI.COMM_WORLD.")
    parser.add_argument("--multisim", type=int, help="Number of simulations run side by side (implies --mpi).")
    parser.add_argument("--summary", type=Path, help="Write a JSON summary of the decision to this path.")
    parser.add_argument(
        "--quiet",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Suppress INFO logs and Python warnings (defaults to io.quiet).",
    )
    parser.add_argument(
        "--override",
        action="append",
        nargs="+",
        metavar="PATH=VALUE",
        help="Apply configuration overrides using dotted paths; e.g. --override restart.precision=double",
    )
    parser.add_argument(
        "--overrides-file",
        action="append",
        type=Path,
        help="Load overrides from a file (one PATH=VALUE per line).",
    )
    args = parser.parse_args(argv)

    override_list: List[str] = []
    if args.overrides_file:
        for override_path in args.overrides_file:
            override_list.extend(config_utils.read_overrides_file(override_path))
    if args.override:
        for group in args.override:
            override_list.extend(group)
    cli_values: Dict[str, Any] = {}
    if args.cpi is not None:
        cli_values["restart.checkpoint"] = args.cpi
    if args.append is not None:
        cli_values["restart.appending"] = AppendingBehavior.from_flag(args.append).value
    if args.mpi or args.multisim is not None:
        cli_values["parallel.use_mpi"] = True
    if args.multisim is not None:
        cli_values["parallel.n_simulations"] = args.multisim
    if args.summary is not None:
        cli_values["io.summary"] = args.summary
    cfg = load_config(args.config, overrides=override_list, values=cli_values)

    quiet = bool(args.quiet) if args.quiet is not None else cfg.io.quiet
    config_utils.configure_logging(logging.WARNING if quiet else logging.INFO, suppress_warnings=quiet)

    try:
        outcome = run_restart(cfg)
    except RestartError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
    logger.info("Restart decision: %s", outcome.starting_behavior.name)


__all__ = [
    "load_config",
    "run_restart",
    "write_restart_checkpoint",
    "main",
]

if __name__ == "__main__":  # pragma: no cover - standard CLI entrypoint
    main()
