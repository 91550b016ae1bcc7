"""Runtime configuration resolved from environment variables."""
from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

LOGGER = logging.getLogger(__name__)

DEFAULT_CACHE_ROOT = ".rnb-cache"
DEFAULT_LOG_DIR = "logs"


def _bool_from_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalised = value.strip().lower()
    if normalised in {"1", "true", "yes", "on"}:
        return True
    if normalised in {"0", "false", "no", "off"}:
        return False
    LOGGER.warning("Invalid boolean for %s: %s; using default %s", name, value, default)
    return default


@dataclass(slots=True)
class NotebookSettings:
    cache_root: Path
    context_id: str
    session_id: str
    log_dir: Path
    log_level: str = "INFO"
    code_class: str = "r"
    audit_enabled: bool = True

    @property
    def notebook_ctx_id(self) -> str:
        """Identity of the (user scope x session scope) owning cache writes."""

        return f"{self.context_id}{self.session_id}"

    def cache_path_for(self, doc_path: str | Path, nb_ctx_id: str | None = None) -> Path:
        """Return the chunk cache folder for ``doc_path`` within a notebook context."""

        resolved = Path(doc_path).expanduser().resolve()
        digest = hashlib.sha1(str(resolved).encode("utf-8")).hexdigest()[:8]
        return self.cache_root / f"{resolved.stem}-{digest}" / (nb_ctx_id or self.notebook_ctx_id)


def load_settings() -> NotebookSettings:
    return NotebookSettings(
        cache_root=Path(os.getenv("RNB_CACHE_ROOT", DEFAULT_CACHE_ROOT)).expanduser(),
        context_id=os.getenv("RNB_CONTEXT_ID", "local").strip() or "local",
        session_id=os.getenv("RNB_SESSION_ID", "0").strip() or "0",
        log_dir=Path(os.getenv("RNB_LOG_DIR", DEFAULT_LOG_DIR)),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        code_class=os.getenv("RNB_CODE_CLASS", "r").strip() or "r",
        audit_enabled=_bool_from_env("RNB_AUDIT_LOG", True),
    )


@lru_cache()
def get_settings() -> NotebookSettings:
    """Return the process-wide settings instance."""

    return load_settings()


def reset_settings_cache() -> None:
    """Clear cached settings (primarily for testing)."""

    get_settings.cache_clear()  # type: ignore[attr-defined]


__all__ = ["NotebookSettings", "get_settings", "load_settings", "reset_settings_cache"]
