"""
Location/Range translation.

Engines report 1-indexed locations; the editor works in 0-indexed, half-open
ranges. The helpers here never raise on odd input: engines occasionally emit
0 where they mean 1, and those values are clamped rather than rejected.
"""

from lsprotocol.types import Position, Range

from .constants import MAX_COLUMN
from .core.types import CodeLocation


def adjust_to_zero_based(value: int) -> int:
    """Convert a 1-indexed value to 0-indexed, clamping rogue values at 0."""
    return 0 if value <= 0 else value - 1


def to_range(location: CodeLocation) -> Range:
    """
    Translate a CodeLocation into an editor range.

    Missing start fields default to 1. When the location has no end, the
    range runs to the end of the start line; an end line without an end
    column runs to the end of that line.

    Args:
        location: The engine-reported location.

    Returns:
        Range: start = (startLine-1, startColumn-1); end = (endLine-1, endColumn)
        when both end fields are present, otherwise (startLine-1, MAX_COLUMN).
    """
    start_line = adjust_to_zero_based(location.start_line if location.start_line is not None else 1)
    start_char = adjust_to_zero_based(location.start_column if location.start_column is not None else 1)
    start = Position(line=start_line, character=start_char)

    if location.has_end:
        end = Position(
            line=adjust_to_zero_based(location.end_line),
            character=min(max(location.end_column, 0), MAX_COLUMN),
        )
    elif location.end_line is not None:
        end = Position(line=adjust_to_zero_based(location.end_line), character=MAX_COLUMN)
    else:
        end = Position(line=start_line, character=MAX_COLUMN)
    return Range(start=start, end=end)


def collapse_to_start_line(rng: Range) -> Range:
    """Return a range that covers the rest of the start line only."""
    return Range(
        start=Position(line=rng.start.line, character=rng.start.character),
        end=Position(line=rng.start.line, character=MAX_COLUMN),
    )


def copy_range(rng: Range) -> Range:
    return Range(
        start=Position(line=rng.start.line, character=rng.start.character),
        end=Position(line=rng.end.line, character=rng.end.character),
    )


def position_before(a: Position, b: Position) -> bool:
    return (a.line, a.character) < (b.line, b.character)


def position_before_or_equal(a: Position, b: Position) -> bool:
    return (a.line, a.character) <= (b.line, b.character)


def is_single_line(rng: Range) -> bool:
    return rng.start.line == rng.end.line


def range_contains_position(rng: Range, position: Position) -> bool:
    """Inclusive containment, matching how editors resolve hovers."""
    return position_before_or_equal(rng.start, position) and position_before_or_equal(
        position, rng.end
    )


def ranges_intersect(a: Range, b: Range) -> bool:
    """True when the two ranges share at least one position."""
    return position_before_or_equal(a.start, b.end) and position_before_or_equal(b.start, a.end)
