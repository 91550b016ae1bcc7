"""Rebuild a notebook cache directory, and the original source, from an archive."""
from __future__ import annotations

import base64
import binascii
import html
import logging
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import List, Sequence

from rnb.errors import AmbiguousResourceError, DecodeError, MissingManifestError
from rnb.markers import TokenKind, find_tokens, tokenize

LOGGER = logging.getLogger(__name__)

_ATTRIBUTE_RE = re.compile(r'([A-Za-z0-9_-]+)\s*=\s*"((?:\\.|[^"\\])*)"')
_DATA_URI_PREFIX_RE = re.compile(r"^.*;base64,", re.DOTALL)


@dataclass(slots=True, frozen=True)
class ManifestEntry:
    relative_path: str
    encoded: str

    @property
    def attribute(self) -> str | None:
        """Name of the attribute holding the payload for ``@attribute`` entries."""

        return self.encoded[1:] if self.encoded.startswith("@") else None


def decode_base64(payload: str, *, what: str) -> bytes:
    try:
        return base64.b64decode(payload.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Invalid base64 payload for '{what}'", cause=exc) from exc


def parse_manifest(lines: Sequence[str]) -> List[ManifestEntry]:
    """Return the entries of the archive's cache manifest block."""

    tokens = tokenize(lines)
    if not find_tokens(tokens, TokenKind.MANIFEST_BEGIN) or not find_tokens(tokens, TokenKind.MANIFEST_END):
        raise MissingManifestError("Archive has no rnb-cache-data block")

    entries: List[ManifestEntry] = []
    for token in find_tokens(tokens, TokenKind.MANIFEST_ENTRY):
        path, separator, encoded = (token.payload or "").partition(":")
        if not separator or not path.strip():
            raise DecodeError(f"Malformed manifest line {token.index + 1}: {token.text!r}")
        entries.append(ManifestEntry(relative_path=path.strip(), encoded=encoded.strip()))
    return entries


def scrape_attributes(line: str) -> dict[str, str]:
    return {name: value for name, value in _ATTRIBUTE_RE.findall(line)}


def resolve_attribute(lines: Sequence[str], relative_path: str, attribute: str) -> bytes:
    """Decode the payload that the element identified by ``relative_path`` carries in ``attribute``."""

    needle = f'data-rnb-id="{html.escape(relative_path)}"'
    matches = [line for line in lines if needle in line]
    if len(matches) != 1:
        raise AmbiguousResourceError(
            f"Expected exactly one element for '{relative_path}', found {len(matches)}"
        )

    value = scrape_attributes(matches[0]).get(attribute)
    if value is None:
        raise DecodeError(f"Element for '{relative_path}' has no '{attribute}' attribute")
    return decode_base64(_DATA_URI_PREFIX_RE.sub("", value), what=relative_path)


def _target_path(cache_path: Path, relative_path: str) -> Path:
    posix = PurePosixPath(relative_path)
    if posix.is_absolute() or ".." in posix.parts:
        raise DecodeError(f"Manifest path '{relative_path}' escapes the cache directory")
    return cache_path.joinpath(*posix.parts)


def hydrate_cache(lines: Sequence[str], cache_path: str | Path) -> Path:
    """Write every manifest resource of the archive below ``cache_path``.

    Running it twice against the same archive rewrites identical bytes.
    """

    root = Path(cache_path)
    entries = parse_manifest(lines)
    for entry in entries:
        target = _target_path(root, entry.relative_path)
        if entry.attribute is not None:
            data = resolve_attribute(lines, entry.relative_path, entry.attribute)
        else:
            data = decode_base64(entry.encoded, what=entry.relative_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    LOGGER.info("Hydrated %d cache resources into %s", len(entries), root)
    return root


def extract_document_source(lines: Sequence[str]) -> str:
    """Return the original source document embedded in the archive."""

    markers = find_tokens(tokenize(lines), TokenKind.DOCUMENT_SOURCE)
    if not markers:
        raise MissingManifestError("Archive has no rnb-document-source marker")
    data = decode_base64(markers[0].payload or "", what="rnb-document-source")
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError("Embedded document source is not valid UTF-8", cause=exc) from exc


__all__ = [
    "ManifestEntry",
    "decode_base64",
    "extract_document_source",
    "hydrate_cache",
    "parse_manifest",
    "resolve_attribute",
    "scrape_attributes",
]
