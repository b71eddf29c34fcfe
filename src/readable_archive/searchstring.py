"""Search string parsing.

A search string is a list of terms separated by spaces. A term can be
quoted to keep its spaces (``"long string"``) and can be prefixed by a
field name (``title:value``, ``author:"Jane Doe"``).
"""

import enum

from pydantic import BaseModel, Field

from readable_archive.exceptions import SearchStringError

_EOF = ""

_HIGH_SPACES = frozenset("\u1680\u2028\u2029\u202f\u205f\u3000")


class Token(enum.Enum):
    EOF = 0
    STR = 1
    STRQ = 2
    FIELD = 3


def is_space(ch: str) -> bool:
    """Return True for ASCII, Latin-1 and Unicode space characters."""
    if ch <= "\u00ff":
        return ch in " \t\n\v\f\r\u0085\u00a0"
    if "\u2000" <= ch <= "\u200a":
        return True
    return ch in _HIGH_SPACES


class Scanner:
    """Splits a search string into tokens."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    def _next(self) -> str:
        if self._pos >= len(self._text):
            self._pos += 1
            return _EOF
        ch = self._text[self._pos]
        self._pos += 1
        return ch

    def _prev(self) -> None:
        self._pos -= 1

    def scan(self) -> tuple[Token, str]:
        """Return the next token and its value."""
        while True:
            ch = self._next()
            if ch == _EOF:
                return Token.EOF, ""
            if ch == '"':
                return Token.STRQ, self._scan_quoted()
            if is_space(ch):
                continue

            self._prev()
            return self._scan_string()

    def _scan_string(self) -> tuple[Token, str]:
        buf = [self._next()]
        while True:
            ch = self._next()
            if ch == _EOF or is_space(ch):
                break
            if ch == ":":
                return Token.FIELD, "".join(buf)
            buf.append(ch)

        return Token.STR, "".join(buf)

    def _scan_quoted(self) -> str:
        # Up to the closing quote or the end of input
        buf = []
        while True:
            ch = self._next()
            if ch == _EOF or ch == '"':
                break
            if ch == "\\":
                c = self._next()
                if c == '"':
                    buf.append(c)
                else:
                    buf.append("\\" + c)
                continue
            buf.append(ch)

        return "".join(buf)


class SearchTerm(BaseModel):
    """One term of a search string."""

    field: str = Field(default="", description="Field name, empty for free text")
    value: str = Field(default="", description="Term value")
    quotes: bool = Field(default=False, description="Whether the value was quoted")


def parse(text: str) -> list[SearchTerm]:
    """
    Parse a search string into a list of terms.

    Raises:
        SearchStringError: When a field is directly followed by another field
    """
    scanner = Scanner(text)
    terms: list[SearchTerm] = []
    field: str | None = None

    while True:
        tok, value = scanner.scan()
        if tok is Token.EOF:
            break
        if tok is Token.FIELD:
            if field is not None:
                raise SearchStringError("field followed by a field")
            field = value
            continue

        terms.append(SearchTerm(field=field or "", value=value, quotes=tok is Token.STRQ))
        field = None

    return terms
