"""
Text scanning primitives shared by every extractor.

Block extraction is delimiter-balanced and aware of Go string literals
(interpreted, raw and rune) and comments, so a `{` inside `"foo{bar"` or
after `//` never moves the depth counter.
"""

import re
from dataclasses import dataclass
from pathlib import Path

_TYPE_LITERAL = re.compile(r"\b(?:interface|struct)\s*$")


@dataclass
class Block:
    content: str                # verbatim lines of the construct
    end_index: int              # 0-based index of its last line


class DelimiterScanner:
    """Incremental open/close counter that can be fed a file in chunks."""

    def __init__(self, open_char: str = "{", close_char: str = "}") -> None:
        self.open_char = open_char
        self.close_char = close_char
        self.depth = 0
        self.open_pos: int | None = None
        self._quote = ""
        self._block_comment = False

    @property
    def opened(self) -> bool:
        return self.open_pos is not None

    def feed(self, chunk: str, start: int = 0) -> int | None:
        """
        Scan chunk[start:] and return the offset of the closer that balances
        the first opener, or None if the block is still open.
        """
        line_comment = False
        i = start
        n = len(chunk)
        while i < n:
            ch = chunk[i]
            if line_comment:
                if ch == "\n":
                    line_comment = False
                i += 1
                continue
            if self._block_comment:
                if chunk.startswith("*/", i):
                    self._block_comment = False
                    i += 2
                else:
                    i += 1
                continue
            if self._quote:
                if ch == "\\" and self._quote != "`":
                    i += 2
                    continue
                if ch == self._quote or (ch == "\n" and self._quote != "`"):
                    self._quote = ""
                i += 1
                continue

            if chunk.startswith("//", i):
                line_comment = True
                i += 2
                continue
            if chunk.startswith("/*", i):
                self._block_comment = True
                i += 2
                continue

            if ch in "\"'`":
                self._quote = ch
            elif ch == self.open_char:
                if self.open_pos is None:
                    self.open_pos = i
                self.depth += 1
            elif ch == self.close_char and self.depth > 0:
                self.depth -= 1
                if self.depth == 0:
                    return i
            i += 1
        return None


def find_matching(
    text: str, start: int = 0, open_char: str = "{", close_char: str = "}"
) -> tuple[int, int] | None:
    """Return (opener, closer) offsets of the first balanced block at or after start."""
    scanner = DelimiterScanner(open_char, close_char)
    close = scanner.feed(text, start)
    if close is None or scanner.open_pos is None:
        return None
    return scanner.open_pos, close


def extract_block(
    lines: list[str],
    start: int,
    open_char: str = "{",
    close_char: str = "}",
    same_line: bool = True,
) -> Block:
    """
    Extend lines[start] to the line holding the matching closer.

    With same_line=True the opener must appear on the first line; otherwise
    the construct is that single line. An unbalanced block runs to EOF.
    """
    scanner = DelimiterScanner(open_char, close_char)
    for index in range(start, len(lines)):
        closed = scanner.feed(lines[index] + "\n")
        if index == start and same_line and not scanner.opened:
            return Block(lines[start], start)
        if closed is not None:
            return Block("\n".join(lines[start:index + 1]), index)
    if not scanner.opened:
        return Block(lines[start], start)
    return Block("\n".join(lines[start:]), len(lines) - 1)


def has_unbalanced(line: str, open_char: str = "(", close_char: str = ")") -> bool:
    """True when line opens a delimiter it does not close."""
    scanner = DelimiterScanner(open_char, close_char)
    return scanner.feed(line + "\n") is None and scanner.opened


def find_body_open(text: str, start: int = 0) -> int | None:
    """
    Offset of the `{` opening a function body at/after start. Braces of
    `interface{...}` and `struct{...}` type literals in the signature are
    skipped.
    """
    pos = start
    while True:
        span = find_matching(text, pos)
        if span is None:
            return None
        if not _TYPE_LITERAL.search(text[max(start, span[0] - 16):span[0]]):
            return span[0]
        pos = span[1] + 1


def extract_function_body(text: str, start: int) -> str:
    """Body between the function's opening `{` at/after start and its matching `}`, trimmed."""
    open_pos = find_body_open(text, start)
    if open_pos is None:
        return ""
    span = find_matching(text, open_pos)
    if span is None:
        return ""
    return text[span[0] + 1:span[1]].strip()


def strip_line_comment(line: str) -> str:
    """Drop a trailing `//` comment that is not inside a string literal."""
    quote = ""
    i = 0
    while i < len(line):
        ch = line[i]
        if quote:
            if ch == "\\" and quote != "`":
                i += 2
                continue
            if ch == quote:
                quote = ""
        elif ch in "\"'`":
            quote = ch
        elif line.startswith("//", i):
            return line[:i].rstrip()
        i += 1
    return line


def split_top_level(text: str, sep: str = ",") -> list[str]:
    """Split on sep outside (), [], {} and string literals; empty parts dropped."""
    parts: list[str] = []
    depth = 0
    quote = ""
    begin = 0
    prev = ""
    for i, ch in enumerate(text):
        if quote:
            if ch == quote and prev != "\\":
                quote = ""
        elif ch in "\"'`":
            quote = ch
        elif ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif ch == sep and depth == 0:
            parts.append(text[begin:i])
            begin = i + 1
        prev = ch
    parts.append(text[begin:])
    return [p.strip() for p in parts if p.strip()]


def line_at(text: str, offset: int) -> int:
    """1-based line number of a character offset."""
    return text.count("\n", 0, offset) + 1


def read_source(path: str | Path) -> str:
    return Path(path).read_text(encoding="utf-8", errors="replace")
