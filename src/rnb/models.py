"""Data models shared by the archive, cache and execution layers."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Mapping


class OutputKind(IntEnum):
    """Type tag of a console record; the value is the on-disk type column."""

    CODE_ECHO = 0
    TEXT_RESULT = 1
    CONDITION = 2


class ExecMode(IntEnum):
    SINGLE = 0
    BATCH = 1


class FinishedKind(IntEnum):
    """Marker carried by ``chunk-output-finished`` events."""

    REPLAY = 0
    INTERACTIVE = 1


class ContextState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    RETIRED = "retired"


@dataclass(slots=True)
class OutputRecord:
    """A single type-tagged piece of console text produced by a chunk."""

    kind: OutputKind
    text: str


@dataclass(slots=True, frozen=True)
class ChunkDefinition:
    """Location of an executed chunk inside its source document.

    ``chunk_start`` and ``chunk_end`` are 1-based line numbers; ``source_row``
    is the 0-based row reported by the chunk metadata.
    """

    chunk_id: str
    source_row: int
    chunk_start: int
    chunk_end: int
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class CacheResource:
    """A file stored in a notebook cache directory.

    ``is_binary`` marks image and script assets, which archives embed in the
    body as data URIs rather than as manifest text.
    """

    relative_path: str
    data: bytes
    is_binary: bool = False


__all__ = [
    "CacheResource",
    "ChunkDefinition",
    "ContextState",
    "ExecMode",
    "FinishedKind",
    "OutputKind",
    "OutputRecord",
]
