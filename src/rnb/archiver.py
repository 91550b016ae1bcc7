"""Pack a source document and its chunk cache into a single archive document.

Encoding happens in two phases. Phase A masks every executed chunk of the
source with a ``rnb-chunk-id`` placeholder and drops chunks that were never
executed. Phase B renders the masked text, embeds the original source, fills
each placeholder with the chunk's cached outputs and finally appends a
manifest of every cache file so that the cache can be rebuilt from the
archive alone.
"""
from __future__ import annotations

import base64
import html
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Set, Tuple

from rnb.cache import NotebookCache, RnbData
from rnb.compactor import console_records_to_html, read_console_records
from rnb.errors import DecodeError, MalformedDocumentError, NotFoundError, RenderError, UnresolvedChunkError
from rnb.markers import (
    TokenKind,
    chunk_placeholder,
    document_source,
    last_index,
    manifest_block,
    tokenize,
)
from rnb.models import ChunkDefinition
from rnb.render import DocumentRenderer, RenderHooks

LOGGER = logging.getLogger(__name__)

IMAGE_MIME_TYPES: Mapping[str, str] = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
}
# Inlined <img> and <script> elements both carry their payload in this attribute.
EMBEDDED_ATTRIBUTE = "src"

_BODY_RE = re.compile(r"<body[^>]*>(.*)</body>", re.DOTALL | re.IGNORECASE)


def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def encode_source(lines: Sequence[str]) -> str:
    return encode_base64("\n".join(lines).encode("utf-8"))


def mask_chunks(lines: Sequence[str], chunk_defs: Mapping[str, ChunkDefinition]) -> List[str]:
    """Replace each executed chunk with a placeholder line and drop un-executed chunks."""

    masked = list(lines)
    previous_start = len(masked) + 1
    for definition in sorted(chunk_defs.values(), key=lambda item: item.chunk_start, reverse=True):
        if definition.chunk_end >= previous_start or definition.chunk_end > len(masked):
            raise MalformedDocumentError(
                f"Chunk '{definition.chunk_id}' spans lines {definition.chunk_start}-"
                f"{definition.chunk_end}, which overlap another chunk or the end of the document"
            )
        masked[definition.chunk_start - 1 : definition.chunk_end] = [chunk_placeholder(definition.chunk_id)]
        previous_start = definition.chunk_start
    return drop_unexecuted_chunks(masked)


def drop_unexecuted_chunks(lines: Sequence[str]) -> List[str]:
    """Delete fenced chunks that have no placeholder between their opening and closing fence."""

    keep = [True] * len(lines)
    open_index: int | None = None
    for token in tokenize(lines):
        if token.kind is TokenKind.FENCE_OPEN:
            open_index = token.index
        elif token.kind is TokenKind.CHUNK_PLACEHOLDER:
            open_index = None
        elif token.kind is TokenKind.FENCE_CLOSE and open_index is not None:
            for index in range(open_index, token.index + 1):
                keep[index] = False
            open_index = None
    return [line for line, kept in zip(lines, keep) if kept]


def insert_before(lines: Sequence[str], kind: TokenKind, injection: Sequence[str]) -> List[str]:
    """Insert ``injection`` before the last line of ``kind``; append when there is none."""

    index = last_index(tokenize(lines), kind)
    if index is None:
        return [*lines, *injection]
    return [*lines[:index], *injection, *lines[index:]]


def extract_body(document: str) -> str:
    match = _BODY_RE.search(document)
    contents = match.group(1) if match else document
    return contents.strip()


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item]
    return [str(value)] if value else []


@dataclass(slots=True)
class FillResult:
    """Rendered lines with placeholders filled, plus the ``data-rnb-id`` paths inlined."""

    lines: List[str]
    inlined: Set[str] = field(default_factory=set)


class Archiver:
    """Build archive documents through a :class:`DocumentRenderer`."""

    def __init__(
        self,
        renderer: DocumentRenderer,
        *,
        hooks: RenderHooks | None = None,
        code_class: str = "r",
    ) -> None:
        self.renderer = renderer
        self.hooks = hooks or RenderHooks.annotated()
        self.code_class = code_class

    def archive(self, rnb_data: RnbData) -> List[str]:
        """Run both encode phases and return the archive as a list of lines."""

        rendered = self.render_masked(rnb_data)
        filled = self.fill_chunks(rendered, rnb_data)
        return self.inject_cache_manifest(filled.lines, NotebookCache(rnb_data.cache_path), filled.inlined)

    def render_masked(self, rnb_data: RnbData) -> List[str]:
        masked = mask_chunks(rnb_data.contents, rnb_data.chunk_defs)
        rendered = self._render("\n".join(masked))
        return insert_before(rendered, TokenKind.HTML_CLOSE, [document_source(encode_source(rnb_data.contents))])

    def render_unevaluated(self, source_lines: Sequence[str]) -> List[str]:
        """Render a source without any cached output, chunks shown as code only."""

        rendered = self._render("\n".join(source_lines))
        return insert_before(rendered, TokenKind.HTML_CLOSE, [document_source(encode_source(source_lines))])

    def _render(self, text: str) -> List[str]:
        try:
            rendered = self.renderer.render(text, self.hooks)
        except RenderError:
            raise
        except Exception as exc:
            raise RenderError("Document renderer failed", cause=exc) from exc
        return rendered.splitlines()

    def fill_chunks(self, html_lines: Sequence[str], rnb_data: RnbData) -> FillResult:
        """Replace every chunk placeholder with the chunk's materialised outputs."""

        cache = NotebookCache(rnb_data.cache_path)
        result = FillResult(lines=[])
        dependencies: Dict[Tuple[str, str], Mapping[str, Any]] = {}

        for token in tokenize(html_lines):
            if token.kind is not TokenKind.CHUNK_PLACEHOLDER:
                result.lines.append(token.text)
                continue

            chunk_id = token.payload or ""
            files = rnb_data.chunk_data.get(chunk_id)
            if files is None or chunk_id not in rnb_data.chunk_defs:
                raise UnresolvedChunkError(f"No cached data for chunk '{chunk_id}'")

            for file_name, data in files.items():
                fragment = self._materialize(chunk_id, file_name, data, files, dependencies, result.inlined)
                if fragment:
                    result.lines.extend(fragment.splitlines())

        if dependencies:
            head = self._dependency_head(dependencies.values(), cache, result.inlined)
            if last_index(tokenize(result.lines), TokenKind.HEAD_CLOSE) is None:
                raise RenderError("Rendered document has no </head> to receive widget dependencies")
            result.lines = insert_before(result.lines, TokenKind.HEAD_CLOSE, head)
        return result

    def _materialize(
        self,
        chunk_id: str,
        file_name: str,
        data: bytes,
        files: Mapping[str, bytes],
        dependencies: Dict[Tuple[str, str], Mapping[str, Any]],
        inlined: Set[str],
    ) -> str | None:
        suffix = Path(file_name).suffix.lower()
        rnb_id = f"{chunk_id}/{file_name}"

        if suffix == ".csv":
            return console_records_to_html(read_console_records(data), code_class=self.code_class)

        if suffix in IMAGE_MIME_TYPES:
            inlined.add(rnb_id)
            tag = (
                f'<img data-rnb-id="{html.escape(rnb_id)}" '
                f'src="data:{IMAGE_MIME_TYPES[suffix]};base64,{encode_base64(data)}" />'
            )
            return self.hooks.format("plot", tag)

        if suffix == ".html":
            sidecar = files.get(f"{Path(file_name).stem}.json")
            for dependency in self._parse_dependencies(rnb_id, sidecar):
                key = (str(dependency.get("name", "")), str(dependency.get("version", "")))
                dependencies.setdefault(key, dependency)
            try:
                body = extract_body(data.decode("utf-8"))
            except UnicodeDecodeError as exc:
                raise DecodeError(f"Widget output '{rnb_id}' is not valid UTF-8", cause=exc) from exc
            return self.hooks.format("htmlwidget", f"<div>\n{body}\n</div>")

        if suffix != ".json":
            LOGGER.debug("Skipping unsupported chunk output %s", rnb_id)
        return None

    @staticmethod
    def _parse_dependencies(rnb_id: str, sidecar: bytes | None) -> List[Mapping[str, Any]]:
        if sidecar is None:
            return []
        try:
            parsed = json.loads(sidecar.decode("utf-8"))
        except ValueError as exc:
            raise DecodeError(f"Invalid widget dependency metadata for '{rnb_id}'", cause=exc) from exc
        items = parsed if isinstance(parsed, list) else [parsed]
        return [item for item in items if isinstance(item, dict) and item.get("name")]

    def _dependency_head(
        self,
        dependencies: Iterable[Mapping[str, Any]],
        cache: NotebookCache,
        inlined: Set[str],
    ) -> List[str]:
        injection: List[str] = []
        for dependency in dependencies:
            name = str(dependency["name"])
            version = str(dependency.get("version", ""))
            for stylesheet in _as_list(dependency.get("stylesheet")):
                rnb_id = f"lib/{name}-{version}/{stylesheet}"
                encoded = encode_base64(self._read_dependency_file(cache, dependency, stylesheet))
                injection.append(
                    f'<link data-rnb-id="{html.escape(rnb_id)}" '
                    f'href="data:text/css;charset=utf8;base64,{encoded}" rel="stylesheet" type="text/css" />'
                )
            for script in _as_list(dependency.get("script")):
                rnb_id = f"lib/{name}-{version}/{script}"
                encoded = encode_base64(self._read_dependency_file(cache, dependency, script))
                injection.append(
                    f'<script data-rnb-id="{html.escape(rnb_id)}" '
                    f'src="data:application/x-javascript;base64,{encoded}"></script>'
                )
                inlined.add(rnb_id)
            head = dependency.get("head")
            if isinstance(head, str) and head.strip():
                injection.extend(head.strip().splitlines())
        return injection

    @staticmethod
    def _read_dependency_file(cache: NotebookCache, dependency: Mapping[str, Any], file_name: str) -> bytes:
        name = str(dependency["name"])
        version = str(dependency.get("version", ""))
        candidates = [cache.lib_file(name, version, file_name)]
        source = dependency.get("src")
        source_dir = source.get("file") if isinstance(source, Mapping) else source
        if isinstance(source_dir, str) and source_dir:
            base = Path(source_dir)
            candidates.append((base if base.is_absolute() else cache.path / base) / file_name)
        for candidate in candidates:
            if candidate.is_file():
                return candidate.read_bytes()
        raise NotFoundError(f"Missing widget dependency file '{file_name}' for {name}-{version}")

    def inject_cache_manifest(
        self,
        html_lines: Sequence[str],
        cache: NotebookCache,
        inlined: Set[str],
    ) -> List[str]:
        """Append the manifest block listing every cache file before ``</html>``."""

        entries: List[str] = []
        for resource in cache.iter_resources():
            path = resource.relative_path
            if ":" in path:
                raise MalformedDocumentError(f"Cache path '{path}' cannot be stored in a manifest")
            if resource.is_binary and path in inlined:
                entries.append(f"{path}:@{EMBEDDED_ATTRIBUTE}")
            else:
                entries.append(f"{path}:{encode_base64(resource.data)}")
        LOGGER.debug("Manifest lists %d cache resources (%d by attribute)", len(entries), len(inlined))
        return insert_before(html_lines, TokenKind.HTML_CLOSE, manifest_block(entries))


def write_archive(lines: Sequence[str], output_path: str | Path) -> Path:
    target = Path(output_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return target


__all__ = [
    "Archiver",
    "EMBEDDED_ATTRIBUTE",
    "FillResult",
    "drop_unexecuted_chunks",
    "encode_source",
    "extract_body",
    "insert_before",
    "mask_chunks",
    "write_archive",
]
