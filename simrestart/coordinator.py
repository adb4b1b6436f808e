"""Make the restart decision once per simulation and binding for every process.

Only the master process of each simulation touches the filesystem.  It runs
the decision engine and, depending on the outcome, prepares the output
files; any error is captured instead of raised.  The error counts of all
processes are then summed over the simulation and, in a multi-simulation,
over all simulations.  When the total is nonzero every process fails: the
process that hit the error re-raises it with its full diagnostic, all
others raise :class:`~simrestart.errors.PeerFailureError`.  Otherwise the
master broadcasts the chosen :class:`~simrestart.model.StartingBehavior`.
"""
from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from .comm import ProcessGroup, gather_across_simulations, reduce_then_broadcast, serial_process_group
from .constants import MASTER_RANK
from .decision import (
    CheckpointReader,
    MissingFilesPolicy,
    RestartDecision,
    choose_starting_behavior,
)
from .errors import PeerFailureError
from .filenames import OutputFileSet
from .integrity import prepare_for_appending
from .io.checkpoint import read_checkpoint_header_and_output_files
from .locking import LogFileLock
from .logfile import LogFileHandle, open_log_file
from .model import AppendingBehavior, Precision, StartingBehavior
from .warnings import MultiSimWarning

logger = logging.getLogger(__name__)


@dataclass
class RestartOutcome:
    """What a process knows after :func:`decide_and_prepare_restart`.

    Only the master of a simulation gets a log handle, the (possibly
    renamed) output files and the checkpoint bookkeeping.
    """

    starting_behavior: StartingBehavior
    log_handle: Optional[LogFileHandle] = None
    output_files: Optional[OutputFileSet] = None
    simulation_part: Optional[int] = None
    part_mismatch: bool = False
    reason: Optional[str] = None


def raise_collective_failure(num_errors: int, local_error: Optional[BaseException]) -> None:
    """Fail every process once any process reported an error.

    The process that caught the error re-raises it unchanged; every other
    process raises a generic :class:`PeerFailureError`, so the detailed
    message is reported exactly once.
    """

    if num_errors <= 0:
        return
    if local_error is not None:
        raise local_error
    raise PeerFailureError("Another process encountered an error while setting up the restart")


def _prepare_on_master(
    appending: AppendingBehavior,
    checkpoint_path: Optional[Path],
    expected: OutputFileSet,
    precision: Precision,
    lock: LogFileLock,
    missing_policy: MissingFilesPolicy,
    reader: CheckpointReader,
) -> Tuple[RestartDecision, LogFileHandle, OutputFileSet]:
    decision = choose_starting_behavior(
        appending,
        checkpoint_path,
        expected,
        precision=precision,
        missing_policy=missing_policy,
        reader=reader,
    )
    if decision.starting_behavior is StartingBehavior.RESTART_WITH_APPENDING:
        handle = open_log_file(expected.log_file.path, appending=True)
        try:
            prepare_for_appending(decision.output_files, handle, lock)
        except Exception:
            handle.close()
            raise
        return decision, handle, expected

    outputs = expected
    if decision.starting_behavior is StartingBehavior.RESTART_WITHOUT_APPENDING:
        outputs = expected.with_part_suffix(decision.next_simulation_part)
        logger.info("Output files of this part: %s", ", ".join(spec.name for spec in outputs.outputs()))
    handle = open_log_file(outputs.log_file.path, appending=False, lock=lock)
    return decision, handle, outputs


def _check_simulation_parts(group: ProcessGroup, simulation_part: Optional[int]) -> bool:
    """Compare the checkpoint part counters of all simulations; True on divergence."""

    parts: Optional[List[Optional[int]]] = gather_across_simulations(group, simulation_part)
    if parts is None:
        return False
    known = {part for part in parts if part is not None}
    if len(known) <= 1:
        return False
    if group.is_master_sim:
        message = "simulation part is not equal for all simulations: " + ", ".join(
            f"sim{index}={part}" for index, part in enumerate(parts)
        )
        logger.warning(message)
        warnings.warn(message, MultiSimWarning, stacklevel=3)
    return True


def decide_and_prepare_restart(
    appending: AppendingBehavior,
    checkpoint_path: Optional[Path],
    expected: OutputFileSet,
    *,
    group: Optional[ProcessGroup] = None,
    precision: Precision = Precision.SINGLE,
    lock: Optional[LogFileLock] = None,
    missing_policy: MissingFilesPolicy = "error",
    reader: CheckpointReader = read_checkpoint_header_and_output_files,
) -> RestartOutcome:
    """Choose and apply the starting behaviour identically on all processes.

    Must be called collectively by every process of ``group``.

    Parameters
    ----------
    appending:
        Requested appending behaviour.
    checkpoint_path:
        Requested checkpoint, or ``None``.
    expected:
        Output files declared by this invocation (only used on masters).
    group:
        Role of this process; defaults to a single serial process.
    precision:
        Arithmetic precision of this build.
    lock:
        Log-file lock capability owned by the run driver.
    missing_policy, reader:
        Passed to :func:`~simrestart.decision.choose_starting_behavior`.

    Raises
    ------
    RestartError
        The original error on the process where it occurred, and
        :class:`PeerFailureError` on all other processes.
    """

    group = group if group is not None else serial_process_group()
    lock = lock if lock is not None else LogFileLock()

    local_error: Optional[BaseException] = None
    decision: Optional[RestartDecision] = None
    handle: Optional[LogFileHandle] = None
    outputs: Optional[OutputFileSet] = None
    if group.is_master:
        try:
            decision, handle, outputs = _prepare_on_master(
                appending, checkpoint_path, expected, precision, lock, missing_policy, reader
            )
        except Exception as exc:
            logger.debug("Restart setup failed on the master process: %s", exc)
            local_error = exc

    part_mismatch = False
    if group.is_master and group.is_multisim:
        part_mismatch = _check_simulation_parts(
            group, decision.simulation_part if decision is not None else None
        )

    num_errors = reduce_then_broadcast(1 if local_error is not None else 0, group.levels())
    if num_errors > 0:
        if handle is not None:
            handle.close()
        raise_collective_failure(num_errors, local_error)

    behavior_value = int(decision.starting_behavior) if decision is not None else 0
    if group.is_parallel:
        behavior_value = group.simulation.bcast_int(behavior_value, root=MASTER_RANK)
    starting_behavior = StartingBehavior(behavior_value)

    if not group.is_master:
        return RestartOutcome(starting_behavior)
    if decision is None:
        raise RuntimeError("master process finished without a restart decision")
    logger.info("Starting behavior: %s", starting_behavior.name)
    return RestartOutcome(
        starting_behavior=starting_behavior,
        log_handle=handle,
        output_files=outputs,
        simulation_part=decision.simulation_part,
        part_mismatch=part_mismatch,
        reason=decision.reason,
    )


__all__ = [
    "RestartOutcome",
    "raise_collective_failure",
    "decide_and_prepare_restart",
]
