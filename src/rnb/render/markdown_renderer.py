"""Default renderer built on Python-Markdown."""
from __future__ import annotations

import html
import logging
import re
from typing import Any, Iterable, List, Sequence, Tuple

import markdown
import yaml

from rnb.errors import RenderError
from rnb.markers import TokenKind, iter_tokens

from .base import DocumentRenderer, RenderHooks

LOGGER = logging.getLogger(__name__)

DEFAULT_EXTENSIONS: tuple[str, ...] = ("fenced_code", "tables")

_CODE_BLOCK_RE = re.compile(r"<pre><code[^>]*>.*?</code></pre>", re.DOTALL)
_FRONT_MATTER_END = {"---", "..."}

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8" />
<meta name="generator" content="rnb" />
<title>{title}</title>
</head>
<body>
{body}
</body>
</html>"""


def split_front_matter(text: str) -> Tuple[dict[str, Any], str]:
    """Split a leading YAML header from the document body."""

    lines = text.splitlines()
    if not lines or lines[0].strip() != "---":
        return {}, text
    for index in range(1, len(lines)):
        if lines[index].strip() in _FRONT_MATTER_END:
            header = yaml.safe_load("\n".join(lines[1:index])) or {}
            if not isinstance(header, dict):
                header = {}
            return header, "\n".join(lines[index + 1 :])
    return {}, text


def _chunk_engine(header: str) -> str:
    engine = re.split(r"[\s,]", header.strip(), maxsplit=1)[0]
    return engine or "r"


class MarkdownRenderer(DocumentRenderer):
    """Render R Markdown prose with ``markdown`` while keeping archive markers intact."""

    def __init__(self, extensions: Iterable[str] | None = None) -> None:
        self.extensions = list(extensions or DEFAULT_EXTENSIONS)

    def render(self, text: str, hooks: RenderHooks, *, title: str | None = None) -> str:
        try:
            front_matter, body = split_front_matter(text)
        except yaml.YAMLError as exc:
            raise RenderError("Invalid YAML front matter", cause=exc) from exc

        prepared, markers = self._protect_markers(body.splitlines())
        try:
            html_body = markdown.markdown("\n".join(prepared), extensions=self.extensions)
        except Exception as exc:  # pragma: no cover - markdown rarely raises
            raise RenderError("Markdown conversion failed", cause=exc) from exc

        html_body = _CODE_BLOCK_RE.sub(lambda match: hooks.format("source", match.group(0)), html_body)
        for key, marker in markers:
            html_body = html_body.replace(f"<p>{key}</p>", marker)

        page_title = title or front_matter.get("title") or "Notebook"
        LOGGER.debug("Rendered %d markdown lines with %d markers", len(prepared), len(markers))
        return _PAGE_TEMPLATE.format(title=html.escape(str(page_title)), body=html_body)

    @staticmethod
    def _protect_markers(lines: Sequence[str]) -> Tuple[List[str], List[Tuple[str, str]]]:
        """Swap marker lines for plain paragraph keys and chunk fences for language fences."""

        prepared: List[str] = []
        markers: List[Tuple[str, str]] = []
        for token in iter_tokens(lines):
            if token.kind in (TokenKind.CHUNK_PLACEHOLDER, TokenKind.DOCUMENT_SOURCE):
                key = f"rnbmarker{len(markers)}"
                markers.append((key, token.text.strip()))
                prepared.extend(["", key, ""])
            elif token.kind is TokenKind.FENCE_OPEN:
                prepared.append(f"```{_chunk_engine(token.payload or '')}")
            else:
                prepared.append(token.text)
        return prepared, markers


__all__ = ["DEFAULT_EXTENSIONS", "MarkdownRenderer", "split_front_matter"]
