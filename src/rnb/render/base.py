"""Renderer interface used to turn prose and chunks into an HTML page."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Dict, Iterable

from rnb.markers import annotate

__all__ = ["DocumentRenderer", "HOOK_KINDS", "OutputHook", "RenderHooks"]

OutputHook = Callable[[str], str]

HOOK_KINDS: tuple[str, ...] = (
    "source",
    "output",
    "plot",
    "text",
    "warning",
    "error",
    "message",
    "htmlwidget",
)


@dataclass(slots=True)
class RenderHooks:
    """Per-kind formatting callbacks handed to a renderer.

    Renderers call :meth:`format` for every piece of chunk output they emit
    instead of exposing internal hooks to be patched.
    """

    callbacks: Dict[str, OutputHook] = field(default_factory=dict)

    def format(self, kind: str, output: str) -> str:
        callback = self.callbacks.get(kind)
        return callback(output) if callback is not None else output

    @classmethod
    def annotated(cls, kinds: Iterable[str] = HOOK_KINDS) -> "RenderHooks":
        """Hooks wrapping each kind of output in ``rnb-KIND-begin/end`` markers."""

        return cls({kind: partial(annotate, kind) for kind in kinds})


class DocumentRenderer(ABC):
    """Abstract interface for document renderers."""

    @abstractmethod
    def render(self, text: str, hooks: RenderHooks, *, title: str | None = None) -> str:
        """Render ``text`` into a standalone HTML document.

        Lines holding archive markers must be emitted unchanged on lines of
        their own, and the result must contain ``</head>`` and ``</html>``.
        """
