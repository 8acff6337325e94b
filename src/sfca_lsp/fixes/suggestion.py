"""
Fix proposals and suggestions.

A FixProposal is what a generator returns. The workflow turns it into a
FixSuggestion, which snapshots the document at creation time so the diff,
the same-code check and the accept-time staleness check all compare against
the same text.
"""

from dataclasses import dataclass
from typing import List, Optional

from lsprotocol.types import Range

from ..diagnostics import AnalyzerDiagnostic
from ..documents import Document, get_text_in_range, line_ending, replace_range, split_lines


@dataclass
class FixProposal:
    range: Range
    replacement_text: str
    explanation: Optional[str] = None


@dataclass
class CodeFixData:
    document: Document
    diagnostic: AnalyzerDiagnostic
    range_to_replace: Range
    replacement_text: str


def _leading_whitespace(line: str) -> str:
    return line[: len(line) - len(line.lstrip())]


def _common_leading_whitespace(lines: List[str]) -> str:
    if not lines:
        return ""
    common = ""
    for i in range(min(len(line) for line in lines)):
        c = lines[0][i]
        if c not in " \t" or any(line[i] != c for line in lines):
            break
        common += c
    return common


class FixSuggestion:
    """A proposal bound to a snapshot of its document."""

    def __init__(self, data: CodeFixData, explanation: Optional[str] = None):
        self.code_fix_data = data
        self.explanation = explanation or None

        # The document keeps changing under us; everything below is frozen now.
        self.original_document_code = data.document.source
        self.original_code_to_be_fixed = get_text_in_range(self.original_document_code, data.range_to_replace)
        lines = split_lines(self.original_document_code)
        start_line = data.range_to_replace.start.line
        self._original_line_at_start = lines[start_line] if start_line < len(lines) else ""

    @property
    def range(self) -> Range:
        return self.code_fix_data.range_to_replace

    def fixed_code_lines(self) -> List[str]:
        """
        The replacement split into lines.

        When the replaced range starts at column 0 the replacement is
        re-indented to match the first replaced line, since generators tend
        to return code with their own indentation.
        """
        lines = split_lines(self.code_fix_data.replacement_text)
        if self.range.start.character != 0:
            return lines

        common = _common_leading_whitespace(lines)
        trimmed = [line[len(common):] for line in lines]
        target = _leading_whitespace(self._original_line_at_start)
        own = _leading_whitespace(trimmed[0])
        indent = target[: len(target) - len(own)] if own and target.endswith(own) else target
        return [indent + line if line else line for line in trimmed]

    @property
    def fixed_code(self) -> str:
        return line_ending(self.original_document_code).join(self.fixed_code_lines())

    def fixed_document_code(self) -> str:
        return replace_range(self.original_document_code, self.range, self.fixed_code)

    def is_same_code(self) -> bool:
        return self.original_code_to_be_fixed == self.fixed_code

    def is_unchanged_in(self, document: Document, rng: Optional[Range] = None) -> bool:
        """
        True when the document still holds the snapshotted text.

        `rng` is where that text is now; the snapshot range when omitted.
        """
        return get_text_in_range(document.source, rng or self.range) == self.original_code_to_be_fixed
