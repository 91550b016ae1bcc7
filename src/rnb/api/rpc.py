"""API router exposing the notebook RPC endpoints."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field

from rnb.errors import (
    ARCHIVE_FORMAT_ERRORS,
    ChunkOptionsError,
    ExecutionContextError,
    NewerOutputError,
    NotebookError,
    NotFoundError,
    RenderError,
)
from rnb.models import ExecMode, OutputKind
from rnb.services.notebook import NotebookService, get_notebook_service

router = APIRouter(prefix="/rpc", tags=["notebook"])


class RefreshChunkOutputRequest(BaseModel):
    """Request body for replaying a document's cached chunk outputs."""

    doc_path: str = Field(..., min_length=1, description="Path of the source document on disk.")
    doc_id: str = Field(..., min_length=1)
    nb_ctx_id: str | None = Field(None, description="Notebook context; defaults to the server's context.")
    request_id: str = ""


class RefreshChunkOutputResponse(BaseModel):
    doc_id: str
    request_id: str
    chunk_ids: list[str]


class SetChunkConsoleRequest(BaseModel):
    """Request body designating the chunk that receives live console output."""

    doc_id: str = Field(..., min_length=1)
    chunk_id: str = Field(..., min_length=1)
    exec_mode: ExecMode = ExecMode.SINGLE
    options: str = Field("", description="Raw chunk header text, e.g. 'r plot-1, echo=FALSE'.")
    pixel_width: int = Field(0, ge=0)
    char_width: int = Field(0, ge=0)
    replace: bool = False
    doc_path: str | None = Field(None, description="Registers the document path when not yet known.")


class CreateNotebookRequest(BaseModel):
    source_path: str = Field(..., min_length=1)
    output_path: str | None = None


class ExtractSourceRequest(BaseModel):
    input_path: str = Field(..., min_length=1, description="Archive to read.")
    output_path: str = Field(..., min_length=1, description="Where the embedded source is written.")


class PathResponse(BaseModel):
    status: str
    path: str


class ConsoleActivatedRequest(BaseModel):
    console_id: str
    text: str = ""


class ConsoleOutputRequest(BaseModel):
    console_id: str
    kind: OutputKind
    text: str


class ChunkExecCompletedRequest(BaseModel):
    doc_id: str = Field(..., min_length=1)
    chunk_id: str = Field(..., min_length=1)
    nb_ctx_id: str = ""


def _http_error(exc: NotebookError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, ChunkOptionsError):
        status_code = 400
    elif isinstance(exc, RenderError):
        status_code = 502
    elif isinstance(exc, (ExecutionContextError, NewerOutputError)):
        status_code = 409
    elif isinstance(exc, ARCHIVE_FORMAT_ERRORS):
        status_code = 422
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail=str(exc))


@router.post("/refresh_chunk_output", response_model=RefreshChunkOutputResponse)
def refresh_chunk_output(
    request: RefreshChunkOutputRequest,
    background_tasks: BackgroundTasks,
    service: NotebookService = Depends(get_notebook_service),
) -> RefreshChunkOutputResponse:
    """Schedule replay of every cached chunk output; completion arrives as an event."""

    try:
        replay = service.refresh_chunk_output(request.doc_path, request.doc_id, request.nb_ctx_id, request.request_id)
    except NotebookError as exc:
        raise _http_error(exc) from exc
    background_tasks.add_task(replay)
    return RefreshChunkOutputResponse(
        doc_id=request.doc_id,
        request_id=request.request_id,
        chunk_ids=list(replay.chunk_ids),
    )


@router.post("/set_chunk_console")
def set_chunk_console(
    request: SetChunkConsoleRequest,
    service: NotebookService = Depends(get_notebook_service),
) -> dict[str, Any]:
    """Evaluate chunk options and bind the live console to the chunk."""

    if request.doc_path:
        service.register_document(request.doc_id, request.doc_path)
    try:
        return service.set_chunk_console(
            request.doc_id,
            request.chunk_id,
            request.exec_mode,
            request.options,
            request.pixel_width,
            request.char_width,
            request.replace,
        )
    except NotebookError as exc:
        raise _http_error(exc) from exc


@router.post("/create_notebook_from_cache", response_model=PathResponse)
def create_notebook_from_cache(
    request: CreateNotebookRequest,
    service: NotebookService = Depends(get_notebook_service),
) -> PathResponse:
    try:
        output = service.create_notebook_from_cache(request.source_path, request.output_path)
    except NotebookError as exc:
        raise _http_error(exc) from exc
    return PathResponse(status="ok", path=str(output))


@router.post("/extract_rmd_from_notebook", response_model=PathResponse)
def extract_rmd_from_notebook(
    request: ExtractSourceRequest,
    service: NotebookService = Depends(get_notebook_service),
) -> PathResponse:
    """Restore a source document and its chunk cache from an archive."""

    try:
        cache_path = service.extract_rmd_from_notebook(request.input_path, request.output_path)
    except NotebookError as exc:
        raise _http_error(exc) from exc
    return PathResponse(status="ok", path=str(cache_path))


@router.post("/console_activated")
def console_activated(
    request: ConsoleActivatedRequest,
    service: NotebookService = Depends(get_notebook_service),
) -> dict[str, str]:
    try:
        service.console_activated(request.console_id, request.text)
    except NotebookError as exc:
        raise _http_error(exc) from exc
    return {"status": "ok"}


@router.post("/console_output")
def console_output(
    request: ConsoleOutputRequest,
    service: NotebookService = Depends(get_notebook_service),
) -> dict[str, bool]:
    try:
        recorded = service.console_output(request.console_id, request.kind, request.text)
    except NotebookError as exc:
        raise _http_error(exc) from exc
    return {"recorded": recorded}


@router.post("/chunk_exec_completed")
def chunk_exec_completed(
    request: ChunkExecCompletedRequest,
    service: NotebookService = Depends(get_notebook_service),
) -> dict[str, str]:
    service.chunk_exec_completed(request.doc_id, request.chunk_id, request.nb_ctx_id)
    return {"status": "ok"}


@router.get("/events")
def drain_events(service: NotebookService = Depends(get_notebook_service)) -> dict[str, list[dict[str, Any]]]:
    """Return and clear every queued client event."""

    return {"events": [event.to_dict() for event in service.events.drain()]}
