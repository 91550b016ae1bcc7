"""Logging configuration for the notebook service."""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any

from rnb.config import NotebookSettings, get_settings

AUDIT_LOGGER_NAME = "rnb.archive.audit"


class MinimalJSONFormatter(logging.Formatter):
    """Serialize log records to a compact JSON string."""

    _RESERVED_KEYS = frozenset(
        {
            "name",
            "msg",
            "args",
            "levelname",
            "levelno",
            "pathname",
            "filename",
            "module",
            "exc_info",
            "exc_text",
            "stack_info",
            "lineno",
            "funcName",
            "created",
            "msecs",
            "relativeCreated",
            "thread",
            "threadName",
            "processName",
            "process",
            "taskName",
        }
    )

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "ts": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
        }

        if isinstance(record.msg, dict):
            entry.update(record.msg)
        else:
            message = record.getMessage()
            if message:
                entry["message"] = message

        if record.exc_info and "exc" not in entry:
            entry["exc_info"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in self._RESERVED_KEYS or key.startswith("_"):
                continue
            entry[key] = value

        return json.dumps(entry, ensure_ascii=False, default=str)


def configure_logging(settings: NotebookSettings | None = None) -> None:
    """Install JSON logging on the root logger and the archive audit logger."""

    settings = settings or get_settings()
    handlers: dict[str, dict[str, Any]] = {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "json",
        },
    }
    audit_handlers = ["default"]
    if settings.audit_enabled:
        settings.log_dir.mkdir(parents=True, exist_ok=True)
        handlers["archive_audit"] = {
            "class": "logging.FileHandler",
            "filename": str(settings.log_dir / "archive_audit.log"),
            "mode": "a",
            "encoding": "utf-8",
            "formatter": "json",
        }
        audit_handlers = ["archive_audit"]

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": MinimalJSONFormatter}},
            "handlers": handlers,
            "root": {
                "level": settings.log_level,
                "handlers": ["default"],
            },
            "loggers": {
                AUDIT_LOGGER_NAME: {
                    "level": "INFO",
                    "handlers": audit_handlers,
                    "propagate": False,
                }
            },
        }
    )


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER_NAME)


__all__ = ["AUDIT_LOGGER_NAME", "MinimalJSONFormatter", "configure_logging", "get_audit_logger"]
