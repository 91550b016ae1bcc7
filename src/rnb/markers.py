"""Line grammar for notebook sources and archive documents.

Source documents and rendered archives are both processed as ordered lists of
lines. :func:`tokenize` classifies each line once so that masking, filling and
manifest handling work on typed tokens rather than on ad-hoc string searches.

Archive markers are HTML comments that occupy a whole line::

    <!-- rnb-document-source BASE64 -->
    <!-- rnb-chunk-id ID -->
    <!-- rnb-TAG-begin -->  ...  <!-- rnb-TAG-end -->
    <!-- rnb-cache-data-begin
      relative/path:ENCODED
    rnb-cache-data-end -->
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Sequence

FENCE_OPEN_RE = re.compile(r"^[\t >]*```+\s*\{[.]?([a-zA-Z]+.*)\}\s*$")
FENCE_CLOSE_RE = re.compile(r"^[\t >]*```+\s*$")

_DOCUMENT_SOURCE_RE = re.compile(r"^\s*<!--\s+rnb-document-source\s+(\S*)\s*-->\s*$")
_CHUNK_PLACEHOLDER_RE = re.compile(r"^\s*<!--\s+rnb-chunk-id\s+(\S+)\s+-->\s*$")
_BLOCK_BEGIN_RE = re.compile(r"^\s*<!--\s+rnb-([A-Za-z0-9_.]+)-begin\s+-->\s*$")
_BLOCK_END_RE = re.compile(r"^\s*<!--\s+rnb-([A-Za-z0-9_.]+)-end\s+-->\s*$")
_MANIFEST_BEGIN_RE = re.compile(r"^\s*<!--\s+rnb-cache-data-begin\s*$")
_MANIFEST_END_RE = re.compile(r"^\s*rnb-cache-data-end\s+-->\s*$")
_HEAD_CLOSE_RE = re.compile(r"^\s*</head>\s*$", re.IGNORECASE)
_BODY_CLOSE_RE = re.compile(r"^\s*</body>\s*$", re.IGNORECASE)
_HTML_CLOSE_RE = re.compile(r"^\s*</html>\s*$", re.IGNORECASE)

# Tags reserved by other markers; never treated as display-block tags.
_RESERVED_BLOCK_TAGS = frozenset({"cache-data"})


class TokenKind(Enum):
    TEXT = "text"
    FENCE_OPEN = "fence_open"
    FENCE_CLOSE = "fence_close"
    DOCUMENT_SOURCE = "document_source"
    CHUNK_PLACEHOLDER = "chunk_placeholder"
    BLOCK_BEGIN = "block_begin"
    BLOCK_END = "block_end"
    MANIFEST_BEGIN = "manifest_begin"
    MANIFEST_ENTRY = "manifest_entry"
    MANIFEST_END = "manifest_end"
    HEAD_CLOSE = "head_close"
    BODY_CLOSE = "body_close"
    HTML_CLOSE = "html_close"


@dataclass(slots=True, frozen=True)
class Token:
    """A classified line; ``index`` is the 0-based position in the input."""

    kind: TokenKind
    index: int
    payload: str | None
    text: str


def _classify(line: str) -> tuple[TokenKind, str | None]:
    match = FENCE_OPEN_RE.match(line)
    if match:
        return TokenKind.FENCE_OPEN, match.group(1).strip()
    if FENCE_CLOSE_RE.match(line):
        return TokenKind.FENCE_CLOSE, None
    if "<!--" in line or "-->" in line:
        for kind, pattern in (
            (TokenKind.DOCUMENT_SOURCE, _DOCUMENT_SOURCE_RE),
            (TokenKind.CHUNK_PLACEHOLDER, _CHUNK_PLACEHOLDER_RE),
        ):
            match = pattern.match(line)
            if match:
                return kind, match.group(1)
        if _MANIFEST_BEGIN_RE.match(line):
            return TokenKind.MANIFEST_BEGIN, None
        if _MANIFEST_END_RE.match(line):
            return TokenKind.MANIFEST_END, None
        for kind, pattern in ((TokenKind.BLOCK_BEGIN, _BLOCK_BEGIN_RE), (TokenKind.BLOCK_END, _BLOCK_END_RE)):
            match = pattern.match(line)
            if match and match.group(1) not in _RESERVED_BLOCK_TAGS:
                return kind, match.group(1)
    if _HEAD_CLOSE_RE.match(line):
        return TokenKind.HEAD_CLOSE, None
    if _BODY_CLOSE_RE.match(line):
        return TokenKind.BODY_CLOSE, None
    if _HTML_CLOSE_RE.match(line):
        return TokenKind.HTML_CLOSE, None
    return TokenKind.TEXT, None


def iter_tokens(lines: Iterable[str]) -> Iterator[Token]:
    """Yield one token per line; lines inside a manifest block become entries."""

    in_manifest = False
    for index, line in enumerate(lines):
        if in_manifest:
            if _MANIFEST_END_RE.match(line):
                in_manifest = False
                yield Token(TokenKind.MANIFEST_END, index, None, line)
            elif line.strip():
                yield Token(TokenKind.MANIFEST_ENTRY, index, line.strip(), line)
            else:
                yield Token(TokenKind.TEXT, index, None, line)
            continue

        kind, payload = _classify(line)
        if kind is TokenKind.MANIFEST_BEGIN:
            in_manifest = True
        yield Token(kind, index, payload, line)


def tokenize(lines: Sequence[str]) -> list[Token]:
    return list(iter_tokens(lines))


def find_tokens(tokens: Iterable[Token], kind: TokenKind) -> list[Token]:
    return [token for token in tokens if token.kind is kind]


def last_index(tokens: Sequence[Token], kind: TokenKind) -> int | None:
    """Return the line index of the last token of ``kind``, if any."""

    for token in reversed(tokens):
        if token.kind is kind:
            return token.index
    return None


def chunk_placeholder(chunk_id: str) -> str:
    return f"<!-- rnb-chunk-id {chunk_id} -->"


def document_source(encoded: str) -> str:
    return f"<!-- rnb-document-source {encoded} -->"


def block_begin(tag: str) -> str:
    return f"<!-- rnb-{tag}-begin -->"


def block_end(tag: str) -> str:
    return f"<!-- rnb-{tag}-end -->"


def annotate(tag: str, html: str) -> str:
    """Wrap ``html`` in begin/end markers, each on its own line."""

    return "\n".join([block_begin(tag), html.strip("\n"), block_end(tag)])


def manifest_block(entries: Iterable[str]) -> list[str]:
    lines = ["<!-- rnb-cache-data-begin"]
    lines.extend(f"  {entry}" for entry in entries)
    lines.append("rnb-cache-data-end -->")
    return lines


__all__ = [
    "FENCE_CLOSE_RE",
    "FENCE_OPEN_RE",
    "Token",
    "TokenKind",
    "annotate",
    "block_begin",
    "block_end",
    "chunk_placeholder",
    "document_source",
    "find_tokens",
    "iter_tokens",
    "last_index",
    "manifest_block",
    "tokenize",
]
