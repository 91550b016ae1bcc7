"""Evaluate the option text of a chunk header against a declared option schema.

A chunk header such as ``r plot-1, echo=FALSE, fig.width=7`` is reduced to
its ``key=value`` pairs. Literal values are parsed (logicals, numbers,
strings, ``NULL``); anything else is kept as raw expression text. Options
listed in :data:`OPTION_SCHEMA` must carry a value of the declared type.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Tuple

from rnb.errors import ChunkOptionsError

LOGGER = logging.getLogger(__name__)

_BOOL_OPTIONS = ("eval", "include", "echo", "message", "warning", "error", "cache", "collapse")
_NUMBER_OPTIONS = ("fig.width", "fig.height", "fig.asp", "dpi")
_STRING_OPTIONS = ("results", "fig.cap", "out.width", "out.height", "engine", "label")

OPTION_SCHEMA: Mapping[str, Tuple[type, ...]] = {
    **{name: (bool,) for name in _BOOL_OPTIONS},
    **{name: (int, float) for name in _NUMBER_OPTIONS},
    **{name: (str,) for name in _STRING_OPTIONS},
}

SETUP_CHUNK_PREFIX = "r setup"

_LITERALS: Mapping[str, Any] = {
    "TRUE": True,
    "T": True,
    "FALSE": False,
    "F": False,
    "NULL": None,
}
_INT_RE = re.compile(r"^[+-]?\d+L?$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")
_BRACKETS = {"(": ")", "[": "]", "{": "}"}


def split_options(text: str) -> List[str]:
    """Split on top-level commas, ignoring commas inside quotes or brackets."""

    parts: List[str] = []
    current: List[str] = []
    stack: List[str] = []
    quote: str | None = None
    escaped = False
    for char in text:
        if quote:
            current.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue
        if char in ("'", '"'):
            quote = char
        elif char in _BRACKETS:
            stack.append(_BRACKETS[char])
        elif stack and char == stack[-1]:
            stack.pop()
        elif char == "," and not stack:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    if quote or stack:
        raise ChunkOptionsError(f"Unbalanced chunk options: {text!r}")
    parts.append("".join(current).strip())
    return [part for part in parts if part]


def parse_value(raw: str) -> Any:
    value = raw.strip()
    if value in _LITERALS:
        return _LITERALS[value]
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    if _INT_RE.match(value):
        return int(value.rstrip("L"))
    if _FLOAT_RE.match(value):
        return float(value)
    return value


def _check_type(name: str, value: Any, raw: str) -> None:
    expected = OPTION_SCHEMA.get(name)
    if expected is None or value is None:
        return
    if not isinstance(value, expected) or (isinstance(value, bool) and bool not in expected):
        raise ChunkOptionsError(f"Chunk option '{name}' expects {expected[0].__name__}, got {raw!r}")


def evaluate_chunk_options(options: str) -> Dict[str, Any]:
    """Return the evaluated options for a chunk header."""

    evaluated: Dict[str, Any] = {}
    text = options.strip()
    if text.startswith(SETUP_CHUNK_PREFIX):
        evaluated["include"] = False

    _, separator, remainder = text.partition(",")
    if not separator:
        return evaluated

    for part in split_options(remainder):
        name, equals, raw_value = part.partition("=")
        name = name.strip()
        if not equals or not name:
            LOGGER.debug("Ignoring positional chunk option %r", part)
            continue
        value = parse_value(raw_value)
        _check_type(name, value, raw_value.strip())
        evaluated[name] = value
    return evaluated


__all__ = ["OPTION_SCHEMA", "evaluate_chunk_options", "parse_value", "split_options"]
