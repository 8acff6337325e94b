"""
Document text helpers.

Fix generators and the fix workflow read open documents through a small
protocol that pygls' `TextDocument` already satisfies. The helpers below
work on plain text so they can be shared with the CLI, which reads files
from disk.
"""

import re
from typing import List, Optional, Protocol

from lsprotocol.types import Position, Range


class Document(Protocol):
    """The parts of an open document the server relies on."""

    uri: str
    language_id: Optional[str]
    version: Optional[int]

    @property
    def source(self) -> str: ...


LINE_BREAK = re.compile(r"\r\n|\r|\n")


def split_lines(text: str) -> List[str]:
    """Split text into lines without their terminators. Always at least one line."""
    return LINE_BREAK.split(text)


def line_ending(text: str) -> str:
    """The first line terminator used in `text`, or `\\n` when it has none."""
    match = LINE_BREAK.search(text)
    return match.group() if match else "\n"


def offset_at(text: str, position: Position) -> int:
    """
    Convert a position into an offset in `text`.

    Lines past the end map to the end of the text; characters past the end of
    a line (including the MAX_COLUMN sentinel) map to the end of that line.
    """
    line_start = 0
    breaks = LINE_BREAK.finditer(text)
    for _ in range(position.line):
        match = next(breaks, None)
        if match is None:
            return len(text)
        line_start = match.end()
    match = next(breaks, None)
    line_end = match.start() if match else len(text)
    return line_start + min(position.character, line_end - line_start)


def get_text_in_range(text: str, rng: Range) -> str:
    return text[offset_at(text, rng.start) : offset_at(text, rng.end)]


def replace_range(text: str, rng: Range, new_text: str) -> str:
    """Return `text` with `rng` replaced by `new_text`."""
    start = offset_at(text, rng.start)
    end = max(start, offset_at(text, rng.end))
    return text[:start] + new_text + text[end:]


def language_of(document: Document) -> str:
    """Language id of a document, falling back to its file extension."""
    if document.language_id:
        return document.language_id
    uri = document.uri.lower()
    if uri.endswith((".cls", ".trigger", ".apex")):
        return "apex"
    if uri.endswith(".java"):
        return "java"
    return ""
