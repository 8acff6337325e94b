"""
Text-Edit Reconciler.

Keeps diagnostic ranges in step with edits made after a scan. A diagnostic
whose text is touched by an edit is marked stale (its range is left where it
was); a diagnostic after the edit is moved by the edit's line delta, and by
its column delta when it starts on the edit's last line; a diagnostic before
the edit is left alone.
"""

import logging
from typing import Any, Iterable, List, Optional, Sequence

from lsprotocol.types import Position, Range

from .constants import MAX_COLUMN
from .diagnostics import AnalyzerDiagnostic
from .ranges import position_before_or_equal

logger = logging.getLogger(__name__)


class TextEdit:
    """
    A single replacement applied to a document.

    A `range` of None means the whole document was replaced.
    """

    def __init__(self, range: Optional[Range], new_text: str):
        self.range = range
        self.new_text = new_text

    @classmethod
    def from_lsp(cls, change: Any) -> "TextEdit":
        """Build from a `TextDocumentContentChangeEvent` (partial or whole document)."""
        return cls(getattr(change, "range", None), change.text)

    @property
    def is_full_replacement(self) -> bool:
        return self.range is None

    def __repr__(self) -> str:
        return f"TextEdit({self.range!r}, {self.new_text!r})"


def translate_range(rng: Range, edit: TextEdit) -> Optional[Range]:
    """
    Move `rng` to account for `edit`.

    Args:
        rng: A range in the document as it was before the edit.
        edit: A ranged edit.

    Returns:
        Range | None: The range after the edit (the same object when the edit
        comes after it), or None when the edit overlaps the range.
    """
    edit_start = edit.range.start
    edit_end = edit.range.end

    if position_before_or_equal(rng.end, edit_start):
        return rng
    if not position_before_or_equal(edit_end, rng.start):
        return None

    new_lines = edit.new_text.replace("\r\n", "\n").split("\n")
    line_delta = (len(new_lines) - 1) - (edit_end.line - edit_start.line)

    start_char = rng.start.character
    end_char = rng.end.character
    if rng.start.line == edit_end.line:
        left = edit_start.character if len(new_lines) == 1 else 0
        start_char = left + len(new_lines[-1]) + (rng.start.character - edit_end.character)
        if rng.end.line == rng.start.line and end_char != MAX_COLUMN:
            end_char = start_char + (rng.end.character - rng.start.character)

    return Range(
        start=Position(line=rng.start.line + line_delta, character=start_char),
        end=Position(line=rng.end.line + line_delta, character=end_char),
    )


def _reconcile_one(diagnostic: AnalyzerDiagnostic, edit: TextEdit) -> None:
    if edit.is_full_replacement:
        diagnostic.mark_stale()
        return

    moved = translate_range(diagnostic.range, edit)
    if moved is None:
        diagnostic.mark_stale()
    else:
        diagnostic.range = moved

    for i, fix_range in enumerate(diagnostic.fix_ranges):
        if fix_range is None:
            continue
        moved = translate_range(fix_range, edit)
        if moved is None:
            # The replacement would clobber text the engine never saw.
            diagnostic.mark_stale()
        else:
            diagnostic.fix_ranges[i] = moved

    for i, suggestion_range in enumerate(diagnostic.suggestion_ranges):
        if suggestion_range is None:
            continue
        diagnostic.suggestion_ranges[i] = translate_range(suggestion_range, edit)

    if diagnostic.pending_fix_range is not None:
        diagnostic.pending_fix_range = translate_range(diagnostic.pending_fix_range, edit)

    for info in diagnostic.related_information:
        if info.file != diagnostic.file:
            continue
        moved = translate_range(info.range, edit)
        if moved is not None:
            info.range = moved


def reconcile(diagnostics: Sequence[AnalyzerDiagnostic], edits: Iterable[TextEdit]) -> List[AnalyzerDiagnostic]:
    """
    Apply a batch of edits, in order, to the diagnostics of one file.

    Args:
        diagnostics: Every diagnostic for the edited file.
        edits: The edits in the order the editor applied them.

    Returns:
        List[AnalyzerDiagnostic]: Diagnostics that became stale during this call.
    """
    was_stale = {id(d) for d in diagnostics if d.is_stale}
    for edit in edits:
        for diagnostic in diagnostics:
            _reconcile_one(diagnostic, edit)

    newly_stale = [d for d in diagnostics if d.is_stale and id(d) not in was_stale]
    if newly_stale:
        logger.debug(f"{len(newly_stale)} diagnostics went stale")
    return newly_stale
