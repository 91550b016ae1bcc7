"""Resolve chunk identifiers to the line ranges they occupy in a source document."""
from __future__ import annotations

import bisect
import logging
from typing import Any, Iterable, Mapping, Sequence

from rnb.errors import MalformedDocumentError
from rnb.markers import TokenKind, iter_tokens
from rnb.models import ChunkDefinition

LOGGER = logging.getLogger(__name__)


def fence_open_lines(lines: Sequence[str]) -> list[int]:
    """Return the 1-based line numbers of every chunk fence-open line."""

    return [token.index + 1 for token in iter_tokens(lines) if token.kind is TokenKind.FENCE_OPEN]


def locate_chunks(
    lines: Sequence[str],
    entries: Iterable[Mapping[str, Any]],
) -> dict[str, ChunkDefinition]:
    """Compute a :class:`ChunkDefinition` for every chunk metadata entry.

    Each entry must carry ``chunk_id`` and ``row`` (the 0-based row of the
    chunk's closing fence). The chunk starts at the closest fence-open line at
    or above ``row + 1`` and ends at ``row + 1``.
    """

    starts = fence_open_lines(lines)
    located: dict[str, ChunkDefinition] = {}
    for entry in entries:
        try:
            chunk_id = str(entry["chunk_id"])
            row = int(entry["row"])
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedDocumentError(f"Invalid chunk definition: {entry!r}", cause=exc) from exc

        if chunk_id in located:
            raise MalformedDocumentError(f"Duplicate chunk id '{chunk_id}'")

        chunk_end = row + 1
        position = bisect.bisect_right(starts, chunk_end)
        if position == 0:
            raise MalformedDocumentError(
                f"Chunk '{chunk_id}' at row {row} precedes every chunk opening line"
            )

        options = entry.get("options") or {}
        located[chunk_id] = ChunkDefinition(
            chunk_id=chunk_id,
            source_row=row,
            chunk_start=starts[position - 1],
            chunk_end=chunk_end,
            options=dict(options) if isinstance(options, Mapping) else {},
        )
        LOGGER.debug("Chunk %s spans lines %s-%s", chunk_id, starts[position - 1], chunk_end)
    return located


__all__ = ["fence_open_lines", "locate_chunks"]
