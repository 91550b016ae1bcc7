"""Service layer wiring the archive, cache and execution components."""
from __future__ import annotations

from .notebook import NotebookService, get_notebook_service, reset_notebook_service

__all__ = ["NotebookService", "get_notebook_service", "reset_notebook_service"]
