from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Sequence

from rnb.archiver import Archiver, write_archive
from rnb.cache import NotebookCache, read_lines, read_rnb_data
from rnb.config import NotebookSettings, get_settings
from rnb.dehydrator import extract_document_source, hydrate_cache
from rnb.errors import NewerOutputError, NotFoundError
from rnb.events import ClientEventQueue
from rnb.execution import ExecutionContextController
from rnb.logging_config import get_audit_logger
from rnb.models import ExecMode, OutputKind, OutputRecord
from rnb.options import evaluate_chunk_options
from rnb.render import DocumentRenderer, MarkdownRenderer
from rnb.replay import CacheOutputPublisher, ReplayCoordinator
from rnb.telemetry import emit_archive_event, emit_exception, traced_duration

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = get_audit_logger()

NOTEBOOK_SUFFIX = ".nb.html"


@dataclass(slots=True)
class ReplayPlan:
    """A scheduled replay of one document's cached chunk outputs."""

    service: "NotebookService"
    doc_path: str
    doc_id: str
    request_id: str
    nb_ctx_id: str
    chunk_ids: List[str] = field(default_factory=list)

    def __call__(self) -> None:
        self.service.replay_chunk_outputs(self.doc_path, self.doc_id, self.request_id, self.chunk_ids, self.nb_ctx_id)


class NotebookService:
    """High level orchestration of notebook archives, replay and live chunk consoles."""

    def __init__(
        self,
        *,
        settings: NotebookSettings | None = None,
        renderer: DocumentRenderer | None = None,
        events: ClientEventQueue | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.events = events or ClientEventQueue()
        self.archiver = Archiver(renderer or MarkdownRenderer(), code_class=self.settings.code_class)
        self.controller = ExecutionContextController(
            self._clean_chunk_output,
            self.events,
            record_output=self._record_output,
        )
        self.replayer = ReplayCoordinator(CacheOutputPublisher(self._cache_for_context, self.events), self.events)
        self._documents: Dict[str, str] = {}

    # Caches ---------------------------------------------------------------------------
    def cache_for(self, doc_path: str | Path, nb_ctx_id: str | None = None) -> NotebookCache:
        return NotebookCache(self.settings.cache_path_for(doc_path, nb_ctx_id))

    def _cache_for_context(self, doc_path: str, nb_ctx_id: str) -> NotebookCache:
        return self.cache_for(doc_path, nb_ctx_id)

    def register_document(self, doc_id: str, doc_path: str) -> None:
        self._documents[doc_id] = doc_path

    def _clean_chunk_output(self, doc_id: str, chunk_id: str) -> None:
        doc_path = self._documents.get(doc_id)
        if doc_path is None:
            LOGGER.debug("No known path for document %s; nothing to clean for chunk %s", doc_id, chunk_id)
            return
        self.cache_for(doc_path).clean_chunk_output(chunk_id)

    def _record_output(self, doc_id: str, chunk_id: str, records: Sequence[OutputRecord]) -> None:
        doc_path = self._documents.get(doc_id)
        if doc_path is None:
            LOGGER.warning("Dropping console output for chunk %s of unknown document %s", chunk_id, doc_id)
            return
        self.cache_for(doc_path).append_console_records(chunk_id, records)

    # Replay ---------------------------------------------------------------------------
    def chunk_definitions(self, doc_path: str, nb_ctx_id: str | None = None) -> List[Dict[str, Any]]:
        return self.cache_for(doc_path, nb_ctx_id).chunk_entries()

    def refresh_chunk_output(
        self,
        doc_path: str,
        doc_id: str,
        nb_ctx_id: str | None,
        request_id: str,
    ) -> ReplayPlan:
        """Look up the document's chunks and return the deferred replay action."""

        self.register_document(doc_id, doc_path)
        context_id = nb_ctx_id or self.settings.notebook_ctx_id
        chunk_ids = [str(entry["chunk_id"]) for entry in self.chunk_definitions(doc_path, context_id) if entry.get("chunk_id")]
        LOGGER.info("Scheduling replay of %d chunks for document %s", len(chunk_ids), doc_id)
        return ReplayPlan(self, doc_path, doc_id, request_id, context_id, chunk_ids)

    def replay_chunk_outputs(
        self,
        doc_path: str,
        doc_id: str,
        request_id: str,
        chunk_ids: Sequence[str],
        nb_ctx_id: str,
    ) -> None:
        try:
            self.replayer.replay(doc_path, doc_id, request_id, chunk_ids, nb_ctx_id)
        except Exception as error:
            emit_exception(module=f"{__name__}.replay", error=error, req_id=request_id, doc_id=doc_id)

    # Live execution -------------------------------------------------------------------
    def set_chunk_console(
        self,
        doc_id: str,
        chunk_id: str,
        exec_mode: ExecMode,
        options_raw: str,
        pixel_width: int,
        char_width: int,
        replace: bool,
    ) -> Dict[str, Any]:
        """Evaluate the chunk's options and, unless skipped, make it the live chunk."""

        options = evaluate_chunk_options(options_raw)
        if exec_mode == ExecMode.BATCH and options.get("eval", True) is False:
            LOGGER.info("Chunk %s of %s has eval=FALSE in batch mode; not executing", chunk_id, doc_id)
            self._clean_chunk_output(doc_id, chunk_id)
            return options

        LOGGER.debug("Designating chunk %s of %s (replace=%s)", chunk_id, doc_id, replace)
        self.controller.designate(doc_id, chunk_id, options_raw, pixel_width, char_width)
        return options

    def console_activated(self, console_id: str, text: str = "") -> None:
        self.controller.on_active_console_changed(console_id, text)

    def console_output(self, console_id: str, kind: OutputKind, text: str) -> bool:
        return self.controller.on_console_output(console_id, kind, text)

    def chunk_exec_completed(self, doc_id: str, chunk_id: str, nb_ctx_id: str = "") -> None:
        self.controller.on_chunk_exec_completed(doc_id, chunk_id, nb_ctx_id or self.settings.notebook_ctx_id)

    # Archives -------------------------------------------------------------------------
    def create_notebook_from_cache(self, source_path: str, output_path: str | None = None) -> Path:
        """Write an archive for ``source_path``, or an unevaluated render when no cache exists."""

        source = Path(source_path)
        if not source.is_file():
            raise NotFoundError(f"No file at path '{source}'")
        output = Path(output_path) if output_path else source.with_name(source.stem + NOTEBOOK_SUFFIX)
        cache = self.cache_for(source)

        started = time.perf_counter()
        with traced_duration("archive.create", source=str(source), output=str(output)):
            if cache.exists:
                rnb_data = read_rnb_data(source, cache.path)
                lines = self.archiver.archive(rnb_data)
                chunk_count: int | None = len(rnb_data.chunk_defs)
            else:
                lines = self.archiver.render_unevaluated(read_lines(source))
                chunk_count = None
            write_archive(lines, output)

        emit_archive_event(
            "archive.write",
            source_path=str(source),
            output_path=str(output),
            cache_path=str(cache.path) if cache.exists else None,
            chunks=chunk_count,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        AUDIT_LOGGER.info({"event": "archive", "source": str(source), "output": str(output), "chunks": chunk_count})
        return output

    def extract_rmd_from_notebook(self, input_path: str, output_path: str) -> Path:
        """Write the archive's embedded source to ``output_path`` and rebuild its cache."""

        archive = Path(input_path)
        output = Path(output_path)
        if not archive.is_file():
            raise NotFoundError(f"No file at path '{archive}'")
        if output.exists() and output.stat().st_mtime > archive.stat().st_mtime:
            raise NewerOutputError(f"'{output}' exists and is newer than '{archive}'")

        lines = read_lines(archive)
        with traced_duration("archive.extract", archive=str(archive), output=str(output)):
            source = extract_document_source(lines)
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(source + "\n", encoding="utf-8")
            cache_path = hydrate_cache(lines, self.cache_for(output).path)

        AUDIT_LOGGER.info({"event": "hydrate", "archive": str(archive), "output": str(output), "cache": str(cache_path)})
        return cache_path


@lru_cache()
def get_notebook_service() -> NotebookService:
    """FastAPI dependency returning the shared :class:`NotebookService` instance."""

    return NotebookService()


def reset_notebook_service() -> None:
    get_notebook_service.cache_clear()  # type: ignore[attr-defined]


__all__ = ["NOTEBOOK_SUFFIX", "NotebookService", "ReplayPlan", "get_notebook_service", "reset_notebook_service"]
