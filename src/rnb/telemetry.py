"""Structured lifecycle logging for archive, replay and execution events."""

from __future__ import annotations

import logging
import os
import platform
import socket
import sys
import time
import traceback
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

LOGGER = logging.getLogger("rnb.telemetry")

_ENV_KEYS_TO_LOG: tuple[str, ...] = (
    "RNB_CACHE_ROOT",
    "RNB_CONTEXT_ID",
    "RNB_SESSION_ID",
    "RNB_LOG_DIR",
    "RNB_CODE_CLASS",
    "RNB_AUDIT_LOG",
    "LOG_LEVEL",
)


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    req_id: str | None = None,
    doc_id: str | None = None,
    chunk_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    extra: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with the agreed-upon schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if req_id:
        event["req_id"] = req_id
    if doc_id:
        event["doc_id"] = doc_id
    if chunk_id:
        event["chunk_id"] = chunk_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    if extra:
        event.update(extra)
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_app_startup_event() -> None:
    env_values = {key: os.getenv(key) for key in _ENV_KEYS_TO_LOG if os.getenv(key) is not None}
    details = {
        "env": env_values,
        "python": sys.version.split()[0],
        "platform": platform.platform(),
    }
    payload = {
        "pid": os.getpid(),
        "hostname": socket.gethostname(),
        "cwd": str(Path.cwd()),
    }
    log_event(LOGGER, "app.startup", details=details, extra=payload)


def emit_archive_event(
    step: str,
    *,
    source_path: str,
    output_path: str | None = None,
    cache_path: str | None = None,
    chunks: int | None = None,
    resources: int | None = None,
    duration_ms: float | None = None,
    error: BaseException | None = None,
) -> None:
    details = {
        "source": source_path,
        "output": output_path,
        "cache": cache_path,
        "chunks": chunks,
        "resources": resources,
    }
    log_event(
        LOGGER,
        step,
        level="error" if error is not None else "info",
        duration_ms=duration_ms,
        details=details,
        exc=error,
    )


def emit_replay_event(
    step: str,
    *,
    doc_id: str,
    req_id: str | None = None,
    chunk_id: str | None = None,
    chunks: int | None = None,
    error: BaseException | None = None,
) -> None:
    log_event(
        LOGGER,
        step,
        level="warning" if error is not None else "debug",
        req_id=req_id,
        doc_id=doc_id,
        chunk_id=chunk_id,
        details={"chunks": chunks} if chunks is not None else None,
        exc=error,
    )


def emit_execution_event(step: str, *, doc_id: str, chunk_id: str, **details: Any) -> None:
    log_event(LOGGER, step, doc_id=doc_id, chunk_id=chunk_id, details=details or None)


def emit_exception(
    *,
    module: str,
    error: BaseException,
    req_id: str | None = None,
    doc_id: str | None = None,
    suggestion: str | None = None,
) -> None:
    details = {"module": module}
    if suggestion:
        details["suggestion"] = suggestion
    log_event(
        LOGGER,
        "exception",
        level="error",
        req_id=req_id,
        doc_id=doc_id,
        details=details,
        exc=error,
    )


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    log_event(logger or LOGGER, f"{step}.start", level="debug", details=fields)
    try:
        yield
    except Exception as error:
        log_event(logger or LOGGER, f"{step}.error", level="error", details=fields, exc=error)
        raise
    finally:
        end = time.perf_counter()
        log_event(
            logger or LOGGER,
            f"{step}.complete",
            duration_ms=(end - start) * 1000.0,
            details=fields,
        )


__all__ = [
    "emit_app_startup_event",
    "emit_archive_event",
    "emit_exception",
    "emit_execution_event",
    "emit_replay_event",
    "log_event",
    "traced_duration",
]
