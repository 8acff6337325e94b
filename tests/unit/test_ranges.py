"""
Unit tests for location/range translation.
"""

from lsprotocol.types import Position, Range

from sfca_lsp.constants import MAX_COLUMN
from sfca_lsp.core.types import CodeLocation
from sfca_lsp.ranges import (
    adjust_to_zero_based,
    collapse_to_start_line,
    is_single_line,
    range_contains_position,
    ranges_intersect,
    to_range,
)


def _range(sl, sc, el, ec) -> Range:
    return Range(start=Position(line=sl, character=sc), end=Position(line=el, character=ec))


class TestToRange:
    """Test conversion of 1-based engine locations."""

    def test_full_location(self):
        loc = CodeLocation(file="a.cls", start_line=3, start_column=9, end_line=5, end_column=12)
        assert to_range(loc) == _range(2, 8, 4, 12)

    def test_missing_end_runs_to_end_of_start_line(self):
        loc = CodeLocation(file="a.cls", start_line=7, start_column=2)
        assert to_range(loc) == _range(6, 1, 6, MAX_COLUMN)

    def test_end_line_without_end_column(self):
        loc = CodeLocation(file="a.cls", start_line=2, start_column=1, end_line=4)
        assert to_range(loc) == _range(1, 0, 3, MAX_COLUMN)

    def test_missing_start_defaults_to_first_position(self):
        assert to_range(CodeLocation(file="a.cls")) == _range(0, 0, 0, MAX_COLUMN)

    def test_rogue_zero_values_are_clamped(self):
        """Engines sometimes report 0 where they mean 1."""
        loc = CodeLocation(file="a.cls", start_line=0, start_column=0, end_line=0, end_column=0)
        assert to_range(loc) == _range(0, 0, 0, 0)

    def test_adjust_to_zero_based(self):
        assert adjust_to_zero_based(1) == 0
        assert adjust_to_zero_based(10) == 9
        assert adjust_to_zero_based(0) == 0
        assert adjust_to_zero_based(-4) == 0


class TestRangeHelpers:
    """Test range predicates."""

    def test_collapse_to_start_line(self):
        assert collapse_to_start_line(_range(4, 2, 9, 1)) == _range(4, 2, 4, MAX_COLUMN)

    def test_contains_is_inclusive(self):
        rng = _range(1, 4, 1, 10)
        assert range_contains_position(rng, Position(line=1, character=4))
        assert range_contains_position(rng, Position(line=1, character=10))
        assert not range_contains_position(rng, Position(line=1, character=11))
        assert not range_contains_position(rng, Position(line=0, character=5))

    def test_intersect(self):
        assert ranges_intersect(_range(1, 0, 3, 0), _range(3, 0, 4, 0))
        assert ranges_intersect(_range(2, 5, 2, 5), _range(0, 0, 9, 0))
        assert not ranges_intersect(_range(1, 0, 1, 5), _range(1, 6, 1, 9))

    def test_is_single_line(self):
        assert is_single_line(_range(3, 0, 3, MAX_COLUMN))
        assert not is_single_line(_range(3, 0, 4, 0))
