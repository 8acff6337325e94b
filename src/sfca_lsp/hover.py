"""
Hover Logic.

Shows the suggestions attached to violations when the cursor is inside a
suggestion's range. Stale diagnostics are skipped since their ranges may no
longer point at the right code.
"""

from typing import List, Optional

from lsprotocol.types import Hover, MarkupContent, MarkupKind, Position, Range

from . import messages
from .manager import DiagnosticManager
from .ranges import position_before, range_contains_position
from .utils import uri_to_path


def format_suggestion_markdown(engine: str, rule: str, message: str) -> str:
    return f"**{messages.SUGGESTION_FOR} `{engine}.{rule}`**\n\n{message}"


def resolve_hover(
    uri: str,
    position: Position,
    diagnostic_manager: DiagnosticManager,
) -> Optional[Hover]:
    """
    Handle textDocument/hover request.

    Args:
        uri: Document URI.
        position: Cursor position (line, character).
        diagnostic_manager: The diagnostic store.

    Returns:
        Hover | None: One hover covering every matching suggestion, spanning
        the union of their ranges.
    """
    sections: List[str] = []
    start: Optional[Position] = None
    end: Optional[Position] = None

    for diagnostic in diagnostic_manager.get_diagnostics_for_file(uri_to_path(uri)):
        if diagnostic.is_stale:
            continue
        for suggestion, rng in zip(diagnostic.violation.suggestions, diagnostic.suggestion_ranges):
            # None means the suggestion lives in another file or was edited away.
            if rng is None or not range_contains_position(rng, position):
                continue
            if start is None or position_before(rng.start, start):
                start = rng.start
            if end is None or position_before(end, rng.end):
                end = rng.end
            sections.append(format_suggestion_markdown(diagnostic.engine, diagnostic.rule, suggestion.message))

    if not sections:
        return None

    return Hover(
        contents=MarkupContent(kind=MarkupKind.Markdown, value="\n\n---\n\n".join(sections)),
        range=Range(start=start, end=end),
    )
