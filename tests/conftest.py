"""Shared fixtures: a deterministic renderer, a sample notebook and cache builders."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Dict, Iterator, Mapping

import pytest

# Keep the audit file handler out of the working tree when rnb.main configures logging.
os.environ.setdefault("RNB_AUDIT_LOG", "0")

from rnb.config import NotebookSettings, reset_settings_cache
from rnb.render import DocumentRenderer, RenderHooks
from rnb.services.notebook import reset_notebook_service

SAMPLE_LINES = [
    "# Analysis",
    "",
    "```{r c1}",
    "x <- 1",
    "x",
    "```",
    "",
    "Some prose.",
    "",
    "```{r unevaluated, eval=FALSE}",
    'stop("never run")',
    "```",
    "",
    "```{r c2}",
    "plot(x)",
    "```",
    "",
    "Done.",
]

# 0-based rows of the closing fences of the executed chunks.
SAMPLE_ROWS = {"c1": 5, "c2": 15}

PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDRfake-image-bytes"
CONSOLE_CSV = b'0,x <- 1\n0,x\n1,"[1] 1\n"\n'
WIDGET_HTML = b"<html><head></head><body><div id='w'>widget</div></body></html>"
WIDGET_DEPS = json.dumps([{"name": "htmlwidgets", "version": "1.0", "script": "htmlwidgets.js"}]).encode()
WIDGET_JS = b"window.HTMLWidgets = {};"


class FakeRenderer(DocumentRenderer):
    """Wraps the text in a minimal page, one input line per output line."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def render(self, text: str, hooks: RenderHooks, *, title: str | None = None) -> str:
        self.calls.append(text)
        return "\n".join(["<html>", "<head>", "</head>", "<body>", *text.splitlines(), "</body>", "</html>"])


class FailingRenderer(DocumentRenderer):
    def render(self, text: str, hooks: RenderHooks, *, title: str | None = None) -> str:
        raise ValueError("renderer exploded")


def write_cache(
    cache_path: Path,
    chunks: Mapping[str, int],
    files: Mapping[str, bytes] | None = None,
) -> Path:
    """Create a chunk cache with ``chunks.json`` plus the given relative files."""

    cache_path.mkdir(parents=True, exist_ok=True)
    definitions = [{"chunk_id": chunk_id, "row": row, "options": {}} for chunk_id, row in chunks.items()]
    (cache_path / "chunks.json").write_text(json.dumps({"chunk_definitions": definitions}), encoding="utf-8")
    for relative, data in (files or {}).items():
        target = cache_path / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
    return cache_path


@pytest.fixture(autouse=True)
def _reset_caches() -> Iterator[None]:
    reset_settings_cache()
    reset_notebook_service()
    yield
    reset_settings_cache()
    reset_notebook_service()


@pytest.fixture
def settings(tmp_path: Path) -> NotebookSettings:
    return NotebookSettings(
        cache_root=tmp_path / "cache",
        context_id="ctx",
        session_id="s1",
        log_dir=tmp_path / "logs",
        audit_enabled=False,
    )


@pytest.fixture
def source_doc(tmp_path: Path) -> Path:
    path = tmp_path / "analysis.Rmd"
    path.write_text("\n".join(SAMPLE_LINES) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def sample_files() -> Dict[str, bytes]:
    return {
        "c1/000001.csv": CONSOLE_CSV,
        "c2/000001.png": PNG_BYTES,
    }


@pytest.fixture
def populated_cache(settings: NotebookSettings, source_doc: Path, sample_files: Dict[str, bytes]) -> Path:
    return write_cache(settings.cache_path_for(source_doc), SAMPLE_ROWS, sample_files)
