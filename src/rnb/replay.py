"""Re-deliver cached chunk outputs to the client in document order."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Protocol, Sequence

from rnb.cache import BINARY_SUFFIXES, NotebookCache
from rnb.compactor import read_console_records
from rnb.errors import NotebookError
from rnb.events import CHUNK_OUTPUT, ClientEvent, ClientEventQueue, chunk_output_finished
from rnb.models import FinishedKind
from rnb.telemetry import emit_replay_event

LOGGER = logging.getLogger(__name__)

CacheResolver = Callable[[str, str], NotebookCache]


class ChunkOutputPublisher(Protocol):
    def enqueue(self, doc_path: str, doc_id: str, chunk_id: str, nb_ctx_id: str, request_id: str) -> bool:
        ...


class CacheOutputPublisher:
    """Publish a chunk's cached files as a single ``chunk-output`` event."""

    def __init__(self, resolve_cache: CacheResolver, events: ClientEventQueue) -> None:
        self._resolve_cache = resolve_cache
        self._events = events

    def enqueue(self, doc_path: str, doc_id: str, chunk_id: str, nb_ctx_id: str, request_id: str) -> bool:
        files = self._resolve_cache(doc_path, nb_ctx_id).chunk_files(chunk_id)
        if not files:
            LOGGER.debug("No cached output for chunk %s of %s", chunk_id, doc_id)
            return False

        outputs: List[Dict[str, Any]] = []
        for name, data in files.items():
            output = self._describe(chunk_id, name, data)
            if output is not None:
                outputs.append(output)
        self._events.enqueue(
            ClientEvent(
                CHUNK_OUTPUT,
                {
                    "doc_id": doc_id,
                    "chunk_id": chunk_id,
                    "request_id": request_id,
                    "nb_ctx_id": nb_ctx_id,
                    "outputs": outputs,
                },
            )
        )
        return True

    @staticmethod
    def _describe(chunk_id: str, name: str, data: bytes) -> Dict[str, Any] | None:
        suffix = Path(name).suffix.lower()
        path = f"{chunk_id}/{name}"
        if suffix == ".csv":
            records = read_console_records(data)
            return {
                "type": "text",
                "path": path,
                "records": [{"kind": int(record.kind), "text": record.text} for record in records],
            }
        if suffix in BINARY_SUFFIXES:
            return {"type": "plot", "path": path}
        if suffix == ".html":
            return {"type": "html", "path": path}
        return None


class ReplayCoordinator:
    """Replays every chunk of a document, then signals completion."""

    def __init__(self, publisher: ChunkOutputPublisher, events: ClientEventQueue) -> None:
        self._publisher = publisher
        self._events = events

    def replay(
        self,
        doc_path: str,
        doc_id: str,
        request_id: str,
        chunk_ids: Sequence[str],
        nb_ctx_id: str,
    ) -> List[str]:
        """Publish cached outputs chunk by chunk; return the ids that had output."""

        delivered: List[str] = []
        try:
            for chunk_id in chunk_ids:
                try:
                    if self._publisher.enqueue(doc_path, doc_id, chunk_id, nb_ctx_id, request_id):
                        delivered.append(chunk_id)
                except (NotebookError, OSError) as error:
                    emit_replay_event(
                        "replay.chunk.error", doc_id=doc_id, req_id=request_id, chunk_id=chunk_id, error=error
                    )
        finally:
            # The client waits on this event even when a chunk failed unexpectedly.
            self._events.enqueue(chunk_output_finished(doc_id, kind=FinishedKind.REPLAY, request_id=request_id))
            emit_replay_event("replay.complete", doc_id=doc_id, req_id=request_id, chunks=len(delivered))
        return delivered


__all__ = ["CacheOutputPublisher", "ChunkOutputPublisher", "ReplayCoordinator"]
