"""Document renderers."""
from __future__ import annotations

from .base import HOOK_KINDS, DocumentRenderer, RenderHooks
from .markdown_renderer import MarkdownRenderer

__all__ = ["DocumentRenderer", "HOOK_KINDS", "MarkdownRenderer", "RenderHooks"]
