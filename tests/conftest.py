from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tests.fixtures.previous_part import PreviousPart, make_previous_part  # noqa: E402


@pytest.fixture
def previous_part(tmp_path: Path) -> PreviousPart:
    """A complete previous part: log, energy and trajectory files plus checkpoint."""

    return make_previous_part(tmp_path / "run")


@pytest.fixture
def previous_part_factory(tmp_path: Path) -> Callable[..., PreviousPart]:
    """Build previous parts with custom bookkeeping under ``tmp_path``."""

    counter = {"n": 0}

    def _factory(**kwargs) -> PreviousPart:
        counter["n"] += 1
        return make_previous_part(tmp_path / f"run{counter['n']}", **kwargs)

    return _factory
