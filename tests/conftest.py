from __future__ import annotations

import pytest

from covgate.models import CoverageIndex
from tests._fixtures.coverage import covered_range, make_index


@pytest.fixture
def scenario_a_index() -> CoverageIndex:
    """Lines 1-10 of a.rs covered, 11-20 uncovered."""
    return make_index(
        ("a.rs", covered_range(range(1, 11), True) + covered_range(range(11, 21), False))
    )
