"""
PMD suppression edits.

Builds the edits behind the "suppress on this line" and "suppress on this
class" quick fixes. Class-level suppressions are merged into an existing
`@SuppressWarnings` annotation directly above the declaration when there is
one, keeping its quoting style.
"""

import re
from typing import Callable, Dict, List, Optional

from lsprotocol.types import Position, Range

from .boundaries import DeclarationScanner, scanner_for
from .documents import split_lines
from .reconciler import TextEdit

SUPPRESSION_ANNOTATION = re.compile(
    r"@SuppressWarnings\s*\(\s*([\"'])([^\"']*)\1\s*\)", re.IGNORECASE
)

LINE_SUPPRESSION_MARKER = " // NOPMD"

# Quote character each language uses in a new annotation.
ANNOTATION_QUOTES: Dict[str, str] = {
    "apex": "'",
    "java": '"',
}


def pmd_suppression_tag(rule: str) -> str:
    return f"PMD.{rule}"


def suppression_annotation(language: str, tags: List[str]) -> str:
    """
    Render a `@SuppressWarnings` annotation for a language.

    Returns an empty string for languages without a suppression syntax.
    """
    quote = ANNOTATION_QUOTES.get(language.lower()) if language else None
    if quote is None:
        return ""
    return f"@SuppressWarnings({quote}{', '.join(tags)}{quote})"


def line_level_edit(text: str, line: int, language: str) -> Optional[TextEdit]:
    """Edit appending the NOPMD marker to `line`, or None if the language has no marker."""
    if language.lower() not in ANNOTATION_QUOTES:
        return None
    lines = split_lines(text)
    if not 0 <= line < len(lines):
        return None
    end = Position(line=line, character=len(lines[line]))
    return TextEdit(Range(start=end, end=end), LINE_SUPPRESSION_MARKER)


class SuppressionMerger:
    """Places class-level suppressions using a per-language declaration scanner."""

    def __init__(self, scanner_factory: Callable[[str], Optional[DeclarationScanner]] = scanner_for):
        self.scanner_factory = scanner_factory

    def class_level_edit(self, text: str, from_line: int, rule: str, language: str) -> Optional[TextEdit]:
        """
        Compute the edit that suppresses `rule` on the declaration enclosing `from_line`.

        Args:
            text: The full document text.
            from_line: 0-based line of the violation.
            rule: The PMD rule name.
            language: The document language id.

        Returns:
            TextEdit | None: The edit, or None when the rule is already suppressed
            or the language is unsupported.
        """
        scanner = self.scanner_factory(language)
        tag = pmd_suppression_tag(rule)
        new_annotation = suppression_annotation(language, [tag])
        if scanner is None or not new_annotation:
            return None

        lines = split_lines(text)
        declaration_line = scanner.find_enclosing_declaration_start(text, from_line).line

        if declaration_line > 0:
            previous = lines[declaration_line - 1]
            match = SUPPRESSION_ANNOTATION.search(previous)
            if match:
                existing = [t.strip() for t in match.group(2).split(",") if t.strip()]
                if tag in existing:
                    return None
                quote = match.group(1)
                updated = f"@SuppressWarnings({quote}{', '.join(existing + [tag])}{quote})"
                return TextEdit(
                    Range(
                        start=Position(line=declaration_line - 1, character=match.start()),
                        end=Position(line=declaration_line - 1, character=match.end()),
                    ),
                    updated,
                )

        declaration = lines[declaration_line] if declaration_line < len(lines) else ""
        indent = declaration[: len(declaration) - len(declaration.lstrip())]
        at = Position(line=declaration_line, character=0)
        return TextEdit(Range(start=at, end=at), f"{indent}{new_annotation}\n")
