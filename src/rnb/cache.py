"""Access to a notebook's per-chunk output cache on disk.

A cache directory holds ``chunks.json`` (the chunk metadata written by the
client), one sub-directory per executed chunk containing its numbered
outputs (``*.csv`` console logs, ``*.png`` plots, ``*.html`` widgets with a
``*.json`` dependency sidecar) and a ``lib/`` tree with widget assets.
"""
from __future__ import annotations

import json
import logging
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Sequence

from rnb.compactor import write_console_records
from rnb.errors import MalformedDocumentError, NotFoundError
from rnb.locator import locate_chunks
from rnb.models import CacheResource, ChunkDefinition, OutputRecord

LOGGER = logging.getLogger(__name__)

CHUNKS_FILE = "chunks.json"
LIB_DIR = "lib"
BINARY_SUFFIXES = frozenset({".png", ".jpg", ".jpeg", ".gif"})
EMBEDDED_ASSET_SUFFIXES = BINARY_SUFFIXES | {".js"}

_CHUNK_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def validate_chunk_id(chunk_id: str) -> str:
    if not _CHUNK_ID_RE.match(chunk_id) or chunk_id in {".", ".."} or chunk_id == LIB_DIR:
        raise MalformedDocumentError(f"Invalid chunk id '{chunk_id}'")
    return chunk_id


def read_lines(path: Path) -> List[str]:
    if not path.is_file():
        raise NotFoundError(f"No file at path '{path}'")
    return path.read_text(encoding="utf-8").splitlines()


@dataclass(slots=True)
class RnbData:
    """Everything needed to build an archive from a source document and its cache."""

    source_path: Path
    cache_path: Path
    contents: List[str]
    chunk_defs: Dict[str, ChunkDefinition]
    chunk_data: Dict[str, Dict[str, bytes]] = field(default_factory=dict)


class NotebookCache:
    """File-system view of one notebook cache directory."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    @property
    def exists(self) -> bool:
        return self.path.is_dir()

    def chunk_entries(self) -> List[Dict[str, Any]]:
        """Return the raw chunk metadata entries in document order."""

        chunks_file = self.path / CHUNKS_FILE
        if not chunks_file.is_file():
            return []
        try:
            payload = json.loads(chunks_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise MalformedDocumentError(f"Unreadable chunk metadata at '{chunks_file}'", cause=exc) from exc

        definitions = payload.get("chunk_definitions", []) if isinstance(payload, dict) else payload
        if not isinstance(definitions, list):
            raise MalformedDocumentError(f"Chunk metadata at '{chunks_file}' is not a list")
        return [entry for entry in definitions if isinstance(entry, dict)]

    def chunk_ids(self) -> List[str]:
        return [str(entry.get("chunk_id", "")) for entry in self.chunk_entries() if entry.get("chunk_id")]

    def chunk_dir(self, chunk_id: str) -> Path:
        return self.path / validate_chunk_id(chunk_id)

    def chunk_files(self, chunk_id: str) -> Dict[str, bytes]:
        """Return a chunk's output files keyed by name, in output order."""

        directory = self.chunk_dir(chunk_id)
        if not directory.is_dir():
            return {}
        return {
            entry.name: entry.read_bytes()
            for entry in sorted(directory.iterdir(), key=lambda item: item.name)
            if entry.is_file()
        }

    def lib_file(self, name: str, version: str, file_name: str) -> Path:
        return self.path / LIB_DIR / f"{name}-{version}" / file_name

    def iter_resources(self) -> Iterator[CacheResource]:
        """Yield every file under the cache, sorted by relative POSIX path."""

        if not self.exists:
            return
        files = sorted(
            (entry for entry in self.path.rglob("*") if entry.is_file()),
            key=lambda item: item.relative_to(self.path).as_posix(),
        )
        for entry in files:
            yield CacheResource(
                relative_path=entry.relative_to(self.path).as_posix(),
                data=entry.read_bytes(),
                is_binary=entry.suffix.lower() in EMBEDDED_ASSET_SUFFIXES,
            )

    def clean_chunk_output(self, chunk_id: str) -> bool:
        """Remove every cached output of ``chunk_id``; return whether anything was removed."""

        directory = self.chunk_dir(chunk_id)
        if not directory.exists():
            return False
        shutil.rmtree(directory)
        LOGGER.info("Removed cached output for chunk %s in %s", chunk_id, self.path)
        return True

    def append_console_records(self, chunk_id: str, records: Sequence[OutputRecord]) -> Path | None:
        """Append records to the chunk's newest console log, starting a new one after other outputs."""

        if not records:
            return None
        directory = self.chunk_dir(chunk_id)
        directory.mkdir(parents=True, exist_ok=True)
        existing = sorted(entry.name for entry in directory.iterdir() if entry.is_file())
        if existing and existing[-1].endswith(".csv"):
            target = directory / existing[-1]
        else:
            target = directory / f"{len(existing) + 1:06d}.csv"
        with target.open("a", encoding="utf-8", newline="") as handle:
            handle.write(write_console_records(records))
        return target


def read_rnb_data(source_path: str | Path, cache_path: str | Path) -> RnbData:
    """Load a source document together with its cached chunk outputs."""

    source = Path(source_path)
    cache = NotebookCache(cache_path)
    contents = read_lines(source)
    if not cache.exists:
        raise NotFoundError(f"No cache directory at path '{cache.path}'")

    chunk_defs = locate_chunks(contents, cache.chunk_entries())
    chunk_data = {chunk_id: cache.chunk_files(chunk_id) for chunk_id in chunk_defs}
    LOGGER.debug("Loaded %d chunk definitions from %s", len(chunk_defs), cache.path)
    return RnbData(
        source_path=source.resolve(),
        cache_path=cache.path.resolve(),
        contents=contents,
        chunk_defs=chunk_defs,
        chunk_data=chunk_data,
    )


__all__ = [
    "BINARY_SUFFIXES",
    "CHUNKS_FILE",
    "EMBEDDED_ASSET_SUFFIXES",
    "LIB_DIR",
    "NotebookCache",
    "RnbData",
    "read_lines",
    "read_rnb_data",
    "validate_chunk_id",
]
