"""Collective communication used to agree on a restart decision.

Processes are organised in levels: every process belongs to the
communicator of its simulation; in a multi-simulation the master of each
simulation also belongs to a communicator of all masters.  All operations
here are blocking collectives: every member of a communicator must call
them in the same order.

:class:`MPICommunicator` wraps :mod:`mpi4py` and moves integers through
fixed-size :mod:`numpy` buffers.  :class:`SerialCommunicator` serves
single-process runs without MPI.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, Sequence

import numpy as np

try:
    from mpi4py import MPI
except ImportError:  # pragma: no cover - optional dependency
    MPI = None

from .constants import MASTER_RANK
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class Communicator(Protocol):
    """Minimal collective interface needed by the restart coordinator."""

    @property
    def rank(self) -> int: ...

    @property
    def size(self) -> int: ...

    def allreduce_sum(self, value: int) -> int: ...

    def bcast_int(self, value: int, root: int = MASTER_RANK) -> int: ...

    def allgather(self, value: Any) -> List[Any]: ...


class SerialCommunicator:
    """Communicator of a single process."""

    rank = 0
    size = 1

    def allreduce_sum(self, value: int) -> int:
        return int(value)

    def bcast_int(self, value: int, root: int = MASTER_RANK) -> int:
        return int(value)

    def allgather(self, value: Any) -> List[Any]:
        return [value]


class MPICommunicator:
    """Adapter from an :mod:`mpi4py` communicator to :class:`Communicator`."""

    def __init__(self, comm: Any) -> None:
        if MPI is None:
            raise RuntimeError("mpi4py is required for MPI communication")
        self._comm = comm

    @property
    def rank(self) -> int:
        return int(self._comm.Get_rank())

    @property
    def size(self) -> int:
        return int(self._comm.Get_size())

    def allreduce_sum(self, value: int) -> int:
        send = np.array([value], dtype=np.int64)
        recv = np.zeros_like(send)
        self._comm.Allreduce(send, recv, op=MPI.SUM)
        return int(recv[0])

    def bcast_int(self, value: int, root: int = MASTER_RANK) -> int:
        buf = np.array([value], dtype=np.int64)
        self._comm.Bcast(buf, root=root)
        return int(buf[0])

    def allgather(self, value: Any) -> List[Any]:
        return list(self._comm.allgather(value))


@dataclass
class ProcessGroup:
    """Role of the calling process in a (multi-)simulation.

    ``multisim`` is the communicator of all simulation masters; it is only
    set on masters of a multi-simulation.  ``is_multisim`` is set on every
    process of a multi-simulation, masters and followers alike.
    """

    simulation: Communicator
    multisim: Optional[Communicator] = None
    is_multisim: bool = False
    simulation_index: int = 0

    def __post_init__(self) -> None:
        if self.multisim is not None and not self.is_multisim:
            self.is_multisim = True
        if self.is_multisim and self.is_master and self.multisim is None:
            raise ConfigurationError("the master of a multi-simulation needs a masters communicator")

    @property
    def is_master(self) -> bool:
        """True on the decision-maker of this simulation."""

        return self.simulation.rank == MASTER_RANK

    @property
    def is_master_sim(self) -> bool:
        """True on the master of the simulation that reports multi-simulation diagnostics."""

        if not self.is_multisim:
            return self.is_master
        return self.multisim is not None and self.multisim.rank == MASTER_RANK

    @property
    def is_parallel(self) -> bool:
        return self.simulation.size > 1

    def levels(self) -> List[Optional[Communicator]]:
        """Communicators from the innermost to the outermost level."""

        if not self.is_multisim:
            return [self.simulation]
        return [self.simulation, self.multisim]


def reduce_then_broadcast(value: int, levels: Sequence[Optional[Communicator]]) -> int:
    """Sum ``value`` over nested process groups and return the total everywhere.

    ``levels[0]`` holds every process; each further level holds the root of
    the level below it, and is ``None`` on processes that are not part of it.
    The sum is reduced level by level outwards and then broadcast back in,
    so every process of ``levels[0]`` returns the same global total.
    """

    total = int(value)
    for comm in levels:
        if comm is None:
            break
        if comm.size > 1:
            total = comm.allreduce_sum(total)
    for depth in range(len(levels) - 2, -1, -1):
        comm = levels[depth]
        if comm is not None and comm.size > 1:
            total = comm.bcast_int(total, root=MASTER_RANK)
    return total


def gather_across_simulations(group: ProcessGroup, value: Any) -> Optional[List[Any]]:
    """Gather ``value`` from every simulation master; ``None`` elsewhere."""

    if not group.is_multisim or group.multisim is None:
        return None
    return group.multisim.allgather(value)


def build_process_group(n_simulations: int = 1, comm: Any = None) -> ProcessGroup:
    """Split ``MPI.COMM_WORLD`` (or ``comm``) into ``n_simulations`` equal simulations."""

    if MPI is None:
        raise RuntimeError("mpi4py is required to build an MPI process group")
    world = comm if comm is not None else MPI.COMM_WORLD
    size = int(world.Get_size())
    rank = int(world.Get_rank())
    if n_simulations < 1:
        raise ConfigurationError(f"number of simulations must be >= 1, got {n_simulations}")
    if size % n_simulations != 0:
        raise ConfigurationError(
            f"The number of processes ({size}) is not a multiple of the number of simulations ({n_simulations})"
        )
    per_simulation = size // n_simulations
    simulation_index = rank // per_simulation
    sim_comm = world.Split(color=simulation_index, key=rank)
    multisim = None
    if n_simulations > 1:
        color = 0 if sim_comm.Get_rank() == MASTER_RANK else MPI.UNDEFINED
        masters = world.Split(color=color, key=rank)
        if masters != MPI.COMM_NULL:
            multisim = MPICommunicator(masters)
    logger.debug(
        "Process %d/%d: simulation %d of %d (%d processes each)",
        rank,
        size,
        simulation_index,
        n_simulations,
        per_simulation,
    )
    return ProcessGroup(
        simulation=MPICommunicator(sim_comm),
        multisim=multisim,
        is_multisim=n_simulations > 1,
        simulation_index=simulation_index,
    )


def serial_process_group() -> ProcessGroup:
    """Process group of a single-process, single-simulation run."""

    return ProcessGroup(simulation=SerialCommunicator())


__all__ = [
    "Communicator",
    "SerialCommunicator",
    "MPICommunicator",
    "ProcessGroup",
    "reduce_then_broadcast",
    "gather_across_simulations",
    "build_process_group",
    "serial_process_group",
]
