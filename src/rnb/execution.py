"""Binding between the live execution console and a document chunk."""
from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from rnb.errors import ExecutionContextError
from rnb.events import ClientEventQueue, chunk_output_finished
from rnb.models import ContextState, FinishedKind, OutputKind, OutputRecord
from rnb.telemetry import emit_execution_event

LOGGER = logging.getLogger(__name__)

CleanOutput = Callable[[str, str], None]
RecordOutput = Callable[[str, str, Sequence[OutputRecord]], None]


class ExecutionContext:
    """Live execution state for one chunk of one document."""

    def __init__(
        self,
        doc_id: str,
        chunk_id: str,
        options_raw: str = "",
        pixel_width: int = 0,
        char_width: int = 0,
        *,
        record_output: RecordOutput | None = None,
    ) -> None:
        self.doc_id = doc_id
        self.chunk_id = chunk_id
        self.options_raw = options_raw
        self.pixel_width = pixel_width
        self.char_width = char_width
        self.state = ContextState.DISCONNECTED
        self._record_output = record_output

    @property
    def connected(self) -> bool:
        return self.state is ContextState.CONNECTED

    @property
    def live(self) -> bool:
        return self.state is not ContextState.RETIRED

    def connect(self) -> None:
        if self.state is ContextState.RETIRED:
            raise ExecutionContextError(f"Execution context for chunk '{self.chunk_id}' is retired")
        self.state = ContextState.CONNECTED
        emit_execution_event("execution.connect", doc_id=self.doc_id, chunk_id=self.chunk_id)

    def disconnect(self) -> None:
        if self.state is ContextState.CONNECTED:
            self.state = ContextState.DISCONNECTED
            emit_execution_event("execution.disconnect", doc_id=self.doc_id, chunk_id=self.chunk_id)

    def retire(self) -> None:
        self.disconnect()
        self.state = ContextState.RETIRED

    def record(self, kind: OutputKind, text: str) -> bool:
        """Store console output for the chunk; ignored unless connected."""

        if not self.connected or not text or self._record_output is None:
            return False
        self._record_output(self.doc_id, self.chunk_id, [OutputRecord(kind=kind, text=text)])
        return True

    def on_console_input(self, text: str) -> bool:
        return self.record(OutputKind.CODE_ECHO, text)

    def __repr__(self) -> str:
        return f"ExecutionContext(doc_id={self.doc_id!r}, chunk_id={self.chunk_id!r}, state={self.state.value})"


class ExecutionContextController:
    """Owns the single live :class:`ExecutionContext` and reacts to console events.

    Only two external triggers mutate the context: the active console
    changing and a chunk's execution completing.
    """

    def __init__(
        self,
        clean_output: CleanOutput,
        events: ClientEventQueue,
        *,
        record_output: RecordOutput | None = None,
    ) -> None:
        self._clean_output = clean_output
        self._record_output = record_output
        self._events = events
        self._context: Optional[ExecutionContext] = None
        self.active_console: str | None = None

    @property
    def context(self) -> Optional[ExecutionContext]:
        return self._context

    def _retire_current(self) -> None:
        if self._context is not None:
            self._context.retire()
            self._context = None

    def designate(
        self,
        doc_id: str,
        chunk_id: str,
        options_raw: str = "",
        pixel_width: int = 0,
        char_width: int = 0,
    ) -> ExecutionContext:
        """Make ``chunk_id`` the chunk receiving live console output."""

        self._clean_output(doc_id, chunk_id)
        self._retire_current()

        context = ExecutionContext(
            doc_id,
            chunk_id,
            options_raw,
            pixel_width,
            char_width,
            record_output=self._record_output,
        )
        self._context = context
        emit_execution_event(
            "execution.designate",
            doc_id=doc_id,
            chunk_id=chunk_id,
            pixel_width=pixel_width,
            char_width=char_width,
        )
        if self.active_console == chunk_id:
            context.connect()
        return context

    def on_active_console_changed(self, console_id: str, text: str = "") -> None:
        self.active_console = console_id
        context = self._context
        if context is None:
            return

        if console_id == context.chunk_id:
            if context.connected:
                return
            context.connect()
            context.on_console_input(text)
        elif context.connected:
            self._retire_current()

    def on_console_output(self, console_id: str, kind: OutputKind, text: str) -> bool:
        context = self._context
        if context is None or console_id != context.chunk_id:
            return False
        return context.record(kind, text)

    def on_chunk_exec_completed(self, doc_id: str, chunk_id: str, nb_ctx_id: str = "") -> None:
        self._events.enqueue(chunk_output_finished(doc_id, kind=FinishedKind.INTERACTIVE, chunk_id=chunk_id))

        context = self._context
        if context is not None and context.doc_id == doc_id and context.chunk_id == chunk_id:
            LOGGER.debug("Chunk %s finished in context %s; retiring", chunk_id, nb_ctx_id or "default")
            self._retire_current()


__all__ = ["ExecutionContext", "ExecutionContextController"]
