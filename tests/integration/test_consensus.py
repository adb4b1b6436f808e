"""Agreement on the restart decision across simulated ranks."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List

import pytest

from simrestart.comm import ProcessGroup
from simrestart.coordinator import RestartOutcome, decide_and_prepare_restart, raise_collective_failure
from simrestart.errors import IntegrityError, PeerFailureError
from simrestart.model import AppendingBehavior, StartingBehavior
from tests.fixtures.previous_part import PreviousPart
from tests.fixtures.thread_comm import run_ranks


def _close_all(results: List[object]) -> None:
    for result in results:
        if isinstance(result, RestartOutcome) and result.log_handle is not None:
            result.log_handle.close()


def test_collective_failure_rule() -> None:
    raise_collective_failure(0, None)
    error = IntegrityError("local")
    with pytest.raises(IntegrityError) as excinfo:
        raise_collective_failure(1, error)
    assert excinfo.value is error
    with pytest.raises(PeerFailureError):
        raise_collective_failure(2, None)


@pytest.mark.filterwarnings("ignore::simrestart.warnings.MultiSimWarning")
def test_all_ranks_agree_on_appending(previous_part_factory: Callable[..., PreviousPart]) -> None:
    parts = [previous_part_factory(), previous_part_factory()]

    def _target(group: ProcessGroup) -> RestartOutcome:
        part = parts[group.simulation_index]
        return decide_and_prepare_restart(
            AppendingBehavior.AUTO, part.checkpoint, part.expected, group=group
        )

    results, errors = run_ranks(2, 3, _target)
    try:
        assert errors == [None] * 6
        assert {result.starting_behavior for result in results} == {StartingBehavior.RESTART_WITH_APPENDING}
        for index, result in enumerate(results):
            is_master = index % 3 == 0
            assert (result.log_handle is not None) is is_master
            assert not result.part_mismatch
    finally:
        _close_all(results)


@pytest.mark.parametrize("failing_simulation", [0, 1])
def test_single_failure_fails_every_rank(
    previous_part_factory: Callable[..., PreviousPart], failing_simulation: int
) -> None:
    parts = [previous_part_factory(), previous_part_factory()]
    energy = parts[failing_simulation].path("energy")
    data = bytearray(energy.read_bytes())
    data[3] ^= 0xFF
    energy.write_bytes(bytes(data))

    def _target(group: ProcessGroup) -> RestartOutcome:
        part = parts[group.simulation_index]
        return decide_and_prepare_restart(
            AppendingBehavior.AUTO, part.checkpoint, part.expected, group=group
        )

    results, errors = run_ranks(2, 2, _target)
    _close_all(results)
    assert results == [None] * 4
    origin = failing_simulation * 2
    for index, error in enumerate(errors):
        if index == origin:
            assert isinstance(error, IntegrityError)
        else:
            assert isinstance(error, PeerFailureError)


@pytest.mark.filterwarnings("ignore::simrestart.warnings.MultiSimWarning")
def test_part_mismatch_is_reported_once(
    previous_part_factory: Callable[..., PreviousPart], caplog: pytest.LogCaptureFixture
) -> None:
    parts = [previous_part_factory(simulation_part=1), previous_part_factory(simulation_part=4)]

    def _target(group: ProcessGroup) -> RestartOutcome:
        part = parts[group.simulation_index]
        return decide_and_prepare_restart(
            AppendingBehavior.NO_APPENDING, part.checkpoint, part.expected, group=group
        )

    with caplog.at_level(logging.WARNING, logger="simrestart.coordinator"):
        results, errors = run_ranks(2, 1, _target)
    try:
        assert errors == [None, None]
        assert [result.part_mismatch for result in results] == [True, True]
        assert [result.simulation_part for result in results] == [1, 4]
        assert {result.starting_behavior for result in results} == {StartingBehavior.RESTART_WITHOUT_APPENDING}
        mismatch_logs = [rec for rec in caplog.records if "not equal for all simulations" in rec.getMessage()]
        assert len(mismatch_logs) == 1
        assert Path(results[1].log_handle.path).name == "md.part0005.log"
    finally:
        _close_all(results)
