"""
Declaration-Boundary Scanner.

Finds the nearest declaration at or above a line, ignoring occurrences of the
keyword inside comments and string literals. This is a regex heuristic, not a
lexer: it understands single-line strings, line comments and block comments,
but a keyword inside a multi-line string literal will still be matched.

The same lexing finds brace-delimited blocks, which is how the method or
class around a violation is located.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from lsprotocol.types import Position, Range

from .documents import split_lines

logger = logging.getLogger(__name__)


class DeclarationScanner(Protocol):
    """Anything that can locate the declaration enclosing a line."""

    def find_enclosing_declaration_start(self, source_text: str, from_line: int) -> Position: ...


class LanguagePatterns:
    """
    Lexical patterns for one language.

    Attributes:
        declaration: Matches the declaration keyword (e.g. `class Foo`).
        line_comment: Matches the opening of a line comment.
        block_comment_start: Matches the opening of a block comment.
        block_comment_end: Matches the close of a block comment.
        quote_chars: Characters that delimit string literals.
    """

    def __init__(
        self,
        declaration: str,
        line_comment: str = r"//",
        block_comment_start: str = r"/\*",
        block_comment_end: str = r"\*/",
        quote_chars: str = "'\"",
    ):
        self.declaration = re.compile(declaration, re.IGNORECASE)
        self.line_comment = re.compile(line_comment)
        self.block_comment_start = re.compile(block_comment_start)
        self.block_comment_end = re.compile(block_comment_end)
        self.quote_chars = quote_chars


LANGUAGE_PATTERNS: Dict[str, LanguagePatterns] = {
    # Apex is case-insensitive and only has single-quoted strings.
    "apex": LanguagePatterns(declaration=r"\bclass\s+\w+", quote_chars="'"),
    "java": LanguagePatterns(declaration=r"\b(?:class|interface|enum|record)\s+\w+", quote_chars="\""),
}


# Keywords followed by parentheses that do not start a method.
CONTROL_KEYWORDS = frozenset(
    {"if", "for", "while", "switch", "catch", "do", "else", "try", "finally", "synchronized", "return"}
)
ANNOTATION = re.compile(r"@\w+(?:\s*\([^)]*\))?")
METHOD_CALL = re.compile(r"(\w+)\s*\(")
STATEMENT_END = re.compile(r"[;{}]")


@dataclass
class Block:
    """
    A brace-delimited block.

    Attributes:
        header: Code preceding the opening brace, back to the previous statement.
        header_line: Line the header starts on.
        open_line: Line of the opening brace.
        close_line: Line of the closing brace, or None if it is never closed.
    """

    header: str
    header_line: int
    open_line: int
    close_line: Optional[int] = None

    def contains(self, rng: Range) -> bool:
        return self.header_line <= rng.start.line and self.close_line is not None and self.close_line >= rng.end.line

    def to_range(self, lines: List[str]) -> Range:
        """The whole lines from the header to the closing brace."""
        end_line = self.close_line if self.close_line is not None else len(lines) - 1
        return Range(
            start=Position(line=self.header_line, character=0),
            end=Position(line=end_line, character=len(lines[end_line])),
        )


def _block_header(codes: List[str], line: int, before_brace: str) -> Tuple[str, int]:
    """Text and first line of the header of a brace opened on `line`."""
    header_line = line
    parts = STATEMENT_END.split(before_brace)
    header = parts[-1]
    # Walk up past a brace on its own line or a parameter list split over lines.
    while len(parts) == 1 and header_line > 0 and (not header.strip() or header.count(")") > header.count("(")):
        header_line -= 1
        parts = STATEMENT_END.split(codes[header_line])
        header = f"{parts[-1]} {header}"
    return header.strip(), header_line



def _is_escaped(line: str, index: int) -> bool:
    backslashes = 0
    i = index - 1
    while i >= 0 and line[i] == "\\":
        backslashes += 1
        i -= 1
    return backslashes % 2 == 1


def is_inside_quotes(line: str, index: int, quote_chars: str = "'\"") -> bool:
    """True when an odd number of unescaped quotes of any one kind precede `index`."""
    for quote in quote_chars:
        count = sum(
            1 for i, ch in enumerate(line[:index]) if ch == quote and not _is_escaped(line, i)
        )
        if count % 2 == 1:
            return True
    return False


class RegexDeclarationScanner:
    """Top-down, comment- and string-aware declaration finder."""

    def __init__(self, patterns: LanguagePatterns):
        self.patterns = patterns

    def find_enclosing_declaration_start(self, source_text: str, from_line: int) -> Position:
        """
        Find the declaration closest to, and not after, `from_line`.

        Args:
            source_text: The full document text.
            from_line: 0-based line to search upward from (inclusive).

        Returns:
            Position: Start of the declaration line, or line 0 if none is found.
        """
        lines: List[str] = split_lines(source_text)
        best: Optional[int] = None
        in_block_comment = False

        for i, line in enumerate(lines[: max(from_line, 0) + 1]):
            code, in_block_comment = self._strip_comments(line, in_block_comment)
            match = self.patterns.declaration.search(code)
            if match and not is_inside_quotes(code, match.start(), self.patterns.quote_chars):
                best = i

        return Position(line=best if best is not None else 0, character=0)

    def _strip_comments(self, line: str, in_block_comment: bool) -> Tuple[str, bool]:
        """
        Blank out the commented parts of a line.

        Comment markers inside string literals are ignored. Returns the code left
        on the line and whether a block comment is still open at its end.
        """
        code = []
        pos = 0
        while pos <= len(line):
            if in_block_comment:
                end = self.patterns.block_comment_end.search(line, pos)
                if not end:
                    return "".join(code), True
                in_block_comment = False
                code.append(" ")
                pos = end.end()
                continue

            opener = self._first_unquoted_comment(line, pos)
            if opener is None:
                code.append(line[pos:])
                break
            code.append(line[pos : opener.start()])
            if opener.re is self.patterns.line_comment:
                break
            in_block_comment = True
            pos = opener.end()
        return "".join(code), in_block_comment

    def _first_unquoted_comment(self, line: str, pos: int) -> Optional[re.Match]:
        found = []
        for pattern in (self.patterns.line_comment, self.patterns.block_comment_start):
            for m in pattern.finditer(line, pos):
                if not is_inside_quotes(line, m.start(), self.patterns.quote_chars):
                    found.append(m)
                    break
        return min(found, key=lambda m: m.start()) if found else None

    def blocks(self, source_text: str) -> List[Block]:
        """Every brace-delimited block in the text, in opening order."""
        blocks: List[Block] = []
        stack: List[Block] = []
        codes: List[str] = []
        in_block_comment = False

        for i, line in enumerate(split_lines(source_text)):
            code, in_block_comment = self._strip_comments(line, in_block_comment)
            codes.append(code)
            quote = None
            for j, ch in enumerate(code):
                if quote:
                    if ch == quote and not _is_escaped(code, j):
                        quote = None
                elif ch in self.patterns.quote_chars:
                    quote = ch
                elif ch == "{":
                    header, header_line = _block_header(codes, i, code[:j])
                    block = Block(header=header, header_line=header_line, open_line=i)
                    blocks.append(block)
                    stack.append(block)
                elif ch == "}" and stack:
                    stack.pop().close_line = i
        return blocks

    def enclosing_class(self, source_text: str, rng: Range) -> Optional[Block]:
        """The innermost class-like declaration containing `rng`."""
        return self._innermost(source_text, rng, lambda b: bool(self.patterns.declaration.search(b.header)))

    def enclosing_method(self, source_text: str, rng: Range) -> Optional[Block]:
        """The innermost method or constructor containing `rng`."""
        return self._innermost(source_text, rng, self._is_method)

    def _innermost(self, source_text: str, rng: Range, accept: Callable[[Block], bool]) -> Optional[Block]:
        found = None
        for block in self.blocks(source_text):
            if block.contains(rng) and accept(block):
                found = block
        return found

    def _is_method(self, block: Block) -> bool:
        header = ANNOTATION.sub(" ", block.header)
        if self.patterns.declaration.search(header):
            return False
        match = METHOD_CALL.search(header)
        if not match or match.group(1).lower() in CONTROL_KEYWORDS:
            return False
        before = header[: match.start()]
        # Assignments and anonymous classes open braces after a call, too.
        return "=" not in before and not re.search(r"\bnew\s*$", before)


def scanner_for(language: str) -> Optional[RegexDeclarationScanner]:
    """Return the scanner for a language id, or None when the language is unsupported."""
    patterns = LANGUAGE_PATTERNS.get(language.lower()) if language else None
    return RegexDeclarationScanner(patterns) if patterns else None
