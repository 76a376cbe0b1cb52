"""Loosely typed driver options with typed accessors."""

from __future__ import annotations

import math
import re
from typing import Any

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_LEGACY_OCTAL = re.compile(r"[+-]?0[0-7_]+")
_TRUE = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE = frozenset({"0", "f", "F", "FALSE", "false", "False"})


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "<nil>"
    return str(value)


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    return 0


def _parse_int(text: str) -> int:
    if not text or not text.isascii() or text.strip() != text:
        raise ValueError(f'parsing "{text}": invalid syntax')
    base = 8 if _LEGACY_OCTAL.fullmatch(text) else 0
    try:
        value = int(text, base)
    except ValueError:
        raise ValueError(f'parsing "{text}": invalid syntax') from None
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f'parsing "{text}": value out of range')
    return value


def _parse_bool(text: str) -> bool:
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f'parsing "{text}": invalid syntax')


class Options(dict):
    """Free-form options; the accessors return ``None`` for absent names."""

    def get_string(self, name: str) -> str | None:
        """Return the option rendered as text."""
        if name not in self:
            return None
        return _format_value(self[name])

    def get_int(self, name: str) -> int | None:
        """Return the option as an integer; strings are parsed with base prefixes."""
        if name not in self:
            return None
        value = self[name]
        if isinstance(value, str):
            return _parse_int(value)
        return _as_int(value)

    def get_bool(self, name: str) -> bool | None:
        """Return the option as a boolean; numbers are true when non-zero."""
        if name not in self:
            return None
        value = self[name]
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return _parse_bool(value)
        return _as_int(value) != 0