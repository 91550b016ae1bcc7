"""Client events and the in-process queue that delivers them."""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List

from rnb.models import FinishedKind

LOGGER = logging.getLogger(__name__)

CHUNK_OUTPUT = "chunk-output"
CHUNK_OUTPUT_FINISHED = "chunk-output-finished"


@dataclass(slots=True)
class ClientEvent:
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "data": dict(self.data)}


class ClientEventQueue:
    """FIFO of events waiting to be picked up by the client."""

    def __init__(self) -> None:
        self._events: Deque[ClientEvent] = deque()

    def enqueue(self, event: ClientEvent) -> None:
        LOGGER.debug("Queued client event %s", event.type)
        self._events.append(event)

    def drain(self) -> List[ClientEvent]:
        drained = list(self._events)
        self._events.clear()
        return drained

    def __len__(self) -> int:
        return len(self._events)


def chunk_output_finished(
    doc_id: str,
    *,
    kind: FinishedKind,
    request_id: str = "",
    chunk_id: str = "",
) -> ClientEvent:
    """Build the event that ends a replay (empty chunk id) or an interactive run."""

    return ClientEvent(
        CHUNK_OUTPUT_FINISHED,
        {
            "doc_id": doc_id,
            "request_id": request_id,
            "chunk_id": chunk_id,
            "type": int(kind),
        },
    )


__all__ = [
    "CHUNK_OUTPUT",
    "CHUNK_OUTPUT_FINISHED",
    "ClientEvent",
    "ClientEventQueue",
    "chunk_output_finished",
]
