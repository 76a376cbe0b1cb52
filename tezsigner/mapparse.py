"""Parsing of free-form ``name value`` option strings into dictionaries."""

from __future__ import annotations

_ERR_RUNE = "invalid rune"
_ERR_QUOTED = "unexpected end of the quoted string"
_ERR_EOF = "unexpected end of the string"


class MapParseError(ValueError):
    """Raised when a key/value string cannot be parsed."""


class _Cursor:
    """Reading position inside the text being parsed."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def take(self) -> str:
        if self.at_end():
            raise MapParseError(_ERR_RUNE)
        ch = self.text[self.pos]
        self.pos += 1
        return ch

    def skip_space(self) -> None:
        while not self.at_end() and self.text[self.pos].isspace():
            self.pos += 1

    def expect(self, sep: str) -> None:
        ch = self.take()
        if ch != sep:
            raise MapParseError(f"unexpected character: {ch}")

    def read_string(self, end: str | None) -> str:
        first = self.take()
        quote = first if first in ("'", '"') else None
        out = [] if quote is not None else [first]
        escaped = False
        while True:
            if self.at_end():
                if quote is not None or escaped:
                    raise MapParseError(_ERR_QUOTED)
                return "".join(out)
            ch = self.text[self.pos]
            if not escaped and quote is None and (ch == end or ch.isspace()):
                return "".join(out)
            self.pos += 1
            if escaped:
                out.append(ch)
                escaped = False
            elif ch == "\\":
                escaped = True
            elif quote is not None and ch == quote:
                return "".join(out)
            else:
                out.append(ch)


def parse_map(
    s: str, nameval_sep: str | None = None, tuples_sep: str | None = None
) -> dict[str, str]:
    """Parse ``s`` into a name/value mapping.

    ``nameval_sep`` separates a name from its value and ``tuples_sep``
    separates pairs; ``None`` means whitespace alone separates them.
    Values may be quoted and characters escaped with a backslash.
    """
    result: dict[str, str] = {}
    cur = _Cursor(s)
    while True:
        cur.skip_space()
        if cur.at_end():
            break
        name = cur.read_string(nameval_sep)
        cur.skip_space()
        if nameval_sep is not None:
            cur.expect(nameval_sep)
            cur.skip_space()
        result[name] = cur.read_string(tuples_sep)

        if tuples_sep is not None:
            cur.skip_space()
            if cur.at_end():
                break
            cur.expect(tuples_sep)
            cur.skip_space()
            if cur.at_end():
                raise MapParseError(_ERR_EOF)
    return result