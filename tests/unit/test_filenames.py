from __future__ import annotations

from pathlib import Path

import pytest

from simrestart.filenames import (
    OutputFileSet,
    OutputFileSpec,
    add_part_suffix,
    backup_name,
    has_part_suffix,
    part_suffix,
)


def _file_set(directory: Path) -> OutputFileSet:
    return OutputFileSet(
        [
            OutputFileSpec("log", directory / "md.log"),
            OutputFileSpec("energy", directory / "md.edr"),
            OutputFileSpec("topology", directory / "topol.tpr", is_output=False),
        ]
    )


def test_part_suffix_is_zero_padded() -> None:
    assert part_suffix(2) == ".part0002"
    assert part_suffix(12345) == ".part12345"
    with pytest.raises(ValueError):
        part_suffix(-1)


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("md.part0002.log", True),
        ("run/md.part0010.edr", True),
        ("md.log", False),
        ("md.part2.log", False),
        ("md.part0002x.log", False),
        ("md.part0002", False),
    ],
)
def test_has_part_suffix(name: str, expected: bool) -> None:
    assert has_part_suffix(name) is expected


def test_add_part_suffix_keeps_directory_and_extension() -> None:
    assert add_part_suffix("out/md.log", ".part0003") == Path("out/md.part0003.log")
    assert add_part_suffix("traj", ".part0003") == Path("traj.part0003")


def test_file_set_requires_single_log() -> None:
    with pytest.raises(ValueError, match="exactly one"):
        OutputFileSet([OutputFileSpec("energy", Path("md.edr"))])
    with pytest.raises(ValueError, match="extension"):
        OutputFileSet([OutputFileSpec("log", Path("md.txt"))])


def test_exists_as_output_requires_exact_declared_name(tmp_path: Path) -> None:
    files = _file_set(tmp_path)
    (tmp_path / "md.log").write_text("log\n")
    (tmp_path / "topol.tpr").write_text("input\n")
    assert files.exists_as_output(str(tmp_path / "md.log"))
    assert not files.exists_as_output(str(tmp_path / "md.edr"))
    assert not files.exists_as_output(str(tmp_path / "topol.tpr"))
    assert not files.exists_as_output("md.log")


def test_with_part_suffix_renames_outputs_only(tmp_path: Path) -> None:
    renamed = _file_set(tmp_path).with_part_suffix(2)
    assert renamed.log_file.path == tmp_path / "md.part0002.log"
    assert renamed.as_mapping() == {
        "log": str(tmp_path / "md.part0002.log"),
        "energy": str(tmp_path / "md.part0002.edr"),
        "topology": str(tmp_path / "topol.tpr"),
    }
    assert [spec.role for spec in renamed.outputs()] == ["log", "energy"]


def test_backup_name_takes_first_free_number(tmp_path: Path) -> None:
    log = tmp_path / "md.log"
    assert backup_name(log) == tmp_path / "#md.log.1#"
    (tmp_path / "#md.log.1#").write_text("old\n")
    assert backup_name(log) == tmp_path / "#md.log.2#"
    (tmp_path / "#md.log.2#").write_text("older\n")
    assert backup_name(log, max_backups=2) is None
