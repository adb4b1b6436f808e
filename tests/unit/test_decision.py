from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from simrestart import decision as decision_module
from simrestart.decision import choose_starting_behavior
from simrestart.errors import (
    CorruptCheckpointError,
    InconsistentRequestError,
    MissingOutputFilesError,
    OffsetOverflowError,
    PrecisionMismatchError,
)
from simrestart.filenames import OutputFileSet, OutputFileSpec
from simrestart.model import (
    AppendingBehavior,
    CheckpointHeader,
    OutputFileRecord,
    Precision,
    StartingBehavior,
)
from tests.fixtures.previous_part import PreviousPart

AUTO = AppendingBehavior.AUTO
APPEND = AppendingBehavior.APPENDING
NOAPPEND = AppendingBehavior.NO_APPENDING


def test_no_checkpoint_requested_starts_new(previous_part: PreviousPart) -> None:
    for appending in AppendingBehavior:
        decision = choose_starting_behavior(appending, None, previous_part.expected)
        assert decision.starting_behavior is StartingBehavior.NEW_SIMULATION
        assert decision.simulation_part == 0


def test_absent_checkpoint_starts_new_unless_appending(previous_part: PreviousPart) -> None:
    absent = previous_part.directory / "missing.cpt"
    for appending in (AUTO, NOAPPEND):
        decision = choose_starting_behavior(appending, absent, previous_part.expected)
        assert decision.starting_behavior is StartingBehavior.NEW_SIMULATION
    with pytest.raises(InconsistentRequestError, match="checkpoint file was not found"):
        choose_starting_behavior(APPEND, absent, previous_part.expected)


@pytest.mark.parametrize("appending", [AUTO, APPEND])
def test_complete_previous_part_appends(previous_part: PreviousPart, appending: AppendingBehavior) -> None:
    decision = choose_starting_behavior(appending, previous_part.checkpoint, previous_part.expected)
    assert decision.starting_behavior is StartingBehavior.RESTART_WITH_APPENDING
    assert list(decision.output_files) == previous_part.records
    assert decision.simulation_part == 1
    assert decision.reason is None


def test_no_appending_request_is_honoured(previous_part: PreviousPart) -> None:
    decision = choose_starting_behavior(NOAPPEND, previous_part.checkpoint, previous_part.expected)
    assert decision.starting_behavior is StartingBehavior.RESTART_WITHOUT_APPENDING
    assert decision.next_simulation_part == 2
    assert decision.reason == "appending was not requested"


def test_missing_output_file_is_fatal_by_default(previous_part: PreviousPart) -> None:
    previous_part.path("energy").unlink()
    with pytest.raises(MissingOutputFilesError) as excinfo:
        choose_starting_behavior(AUTO, previous_part.checkpoint, previous_part.expected)
    error = excinfo.value
    assert error.missing == (str(previous_part.path("energy")),)
    assert str(previous_part.path("log")) in error.present
    assert "not present or named differently" in str(error)


def test_missing_output_file_can_fall_back_to_numbered_files(previous_part: PreviousPart) -> None:
    previous_part.path("energy").unlink()
    decision = choose_starting_behavior(
        AUTO, previous_part.checkpoint, previous_part.expected, missing_policy="noappend"
    )
    assert decision.starting_behavior is StartingBehavior.RESTART_WITHOUT_APPENDING
    assert "1 of 3" in (decision.reason or "")
    with pytest.raises(MissingOutputFilesError):
        choose_starting_behavior(
            APPEND, previous_part.checkpoint, previous_part.expected, missing_policy="noappend"
        )


def test_renamed_outputs_count_as_missing(previous_part: PreviousPart, tmp_path: Path) -> None:
    renamed = OutputFileSet(
        OutputFileSpec(spec.role, tmp_path / "other" / spec.path.name) for spec in previous_part.expected
    )
    with pytest.raises(MissingOutputFilesError) as excinfo:
        choose_starting_behavior(AUTO, previous_part.checkpoint, renamed)
    assert excinfo.value.present == ()
    assert len(excinfo.value.missing) == 3


def test_unrepresentable_offset_blocks_appending(previous_part_factory: Callable[..., PreviousPart]) -> None:
    part = previous_part_factory(max_offset=16)
    with pytest.raises(OffsetOverflowError, match="could not represent"):
        choose_starting_behavior(AUTO, part.checkpoint, part.expected)
    decision = choose_starting_behavior(NOAPPEND, part.checkpoint, part.expected)
    assert decision.starting_behavior is StartingBehavior.RESTART_WITHOUT_APPENDING


def test_precision_mismatch(previous_part_factory: Callable[..., PreviousPart]) -> None:
    part = previous_part_factory(double_precision=True)
    decision = choose_starting_behavior(AUTO, part.checkpoint, part.expected, precision=Precision.SINGLE)
    assert decision.starting_behavior is StartingBehavior.RESTART_WITHOUT_APPENDING
    assert "precision" in (decision.reason or "")
    with pytest.raises(PrecisionMismatchError, match="double precision"):
        choose_starting_behavior(APPEND, part.checkpoint, part.expected, precision=Precision.SINGLE)
    matching = choose_starting_behavior(APPEND, part.checkpoint, part.expected, precision=Precision.DOUBLE)
    assert matching.starting_behavior is StartingBehavior.RESTART_WITH_APPENDING


def test_precision_not_recorded_by_old_versions(previous_part_factory: Callable[..., PreviousPart]) -> None:
    part = previous_part_factory(double_precision=True, file_version=12)
    decision = choose_starting_behavior(AUTO, part.checkpoint, part.expected, precision=Precision.SINGLE)
    assert decision.starting_behavior is StartingBehavior.RESTART_WITH_APPENDING


def test_numbered_previous_part_cannot_be_appended(previous_part_factory: Callable[..., PreviousPart]) -> None:
    part = previous_part_factory(stem="md.part0002", simulation_part=2)
    decision = choose_starting_behavior(AUTO, part.checkpoint, part.expected)
    assert decision.starting_behavior is StartingBehavior.RESTART_WITHOUT_APPENDING
    assert "md.part0002.log" in (decision.reason or "")
    with pytest.raises(InconsistentRequestError, match="did not use appending"):
        choose_starting_behavior(APPEND, part.checkpoint, part.expected)


def test_only_first_blocking_reason_is_reported(previous_part_factory: Callable[..., PreviousPart]) -> None:
    part = previous_part_factory(stem="md.part0002", double_precision=True)
    decision = choose_starting_behavior(AUTO, part.checkpoint, part.expected, precision=Precision.SINGLE)
    assert "precision" in (decision.reason or "")
    assert "numbered" not in (decision.reason or "")
    with pytest.raises(PrecisionMismatchError):
        choose_starting_behavior(APPEND, part.checkpoint, part.expected, precision=Precision.SINGLE)


def test_missing_files_take_precedence_over_offsets(previous_part_factory: Callable[..., PreviousPart]) -> None:
    part = previous_part_factory(max_offset=16)
    part.path("compressed_trajectory").unlink()
    with pytest.raises(MissingOutputFilesError):
        choose_starting_behavior(AUTO, part.checkpoint, part.expected)


def _fail_on_file_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    def _unexpected(self: OutputFileSet, filename: str) -> bool:
        raise AssertionError(f"output file {filename} inspected for a corrupt checkpoint")

    monkeypatch.setattr(OutputFileSet, "exists_as_output", _unexpected)


def test_checkpoint_without_output_files_is_corrupt(
    previous_part: PreviousPart, monkeypatch: pytest.MonkeyPatch
) -> None:
    _fail_on_file_checks(monkeypatch)
    header = CheckpointHeader(simulation_part=1, double_precision=False, file_version=13)
    for appending in AppendingBehavior:
        with pytest.raises(CorruptCheckpointError, match="no output file"):
            choose_starting_behavior(
                appending,
                previous_part.checkpoint,
                previous_part.expected,
                reader=lambda path: (header, []),
            )


def test_checkpoint_must_list_log_first(previous_part: PreviousPart, monkeypatch: pytest.MonkeyPatch) -> None:
    _fail_on_file_checks(monkeypatch)
    records = list(reversed(previous_part.records))
    with pytest.raises(CorruptCheckpointError, match="must be a log file"):
        choose_starting_behavior(
            AUTO,
            previous_part.checkpoint,
            previous_part.expected,
            reader=lambda path: (previous_part.header, records),
        )


def test_reader_receives_checkpoint_path(previous_part: PreviousPart) -> None:
    seen = []

    def _reader(path: Path):
        seen.append(path)
        return previous_part.header, [OutputFileRecord(str(previous_part.path("log")), 0)]

    expected = OutputFileSet(spec for spec in previous_part.expected if spec.role == "log")
    decision = choose_starting_behavior(AUTO, previous_part.checkpoint, expected, reader=_reader)
    assert seen == [previous_part.checkpoint]
    assert decision.starting_behavior is StartingBehavior.RESTART_WITH_APPENDING


def test_forced_appending_never_degrades_to_numbered_files(
    previous_part: PreviousPart, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(decision_module, "_appending_blocker", lambda *args: "blocked without raising")
    with pytest.raises(RuntimeError, match="appending was requested"):
        choose_starting_behavior(APPEND, previous_part.checkpoint, previous_part.expected)
    assert (
        choose_starting_behavior(AUTO, previous_part.checkpoint, previous_part.expected).reason
        == "blocked without raising"
    )
