import json
from pathlib import Path

import pytest

from conftest import (
    PNG_BYTES,
    SAMPLE_LINES,
    SAMPLE_ROWS,
    WIDGET_DEPS,
    WIDGET_HTML,
    WIDGET_JS,
    FailingRenderer,
    FakeRenderer,
    write_cache,
)

from rnb.archiver import Archiver, drop_unexecuted_chunks, encode_base64, mask_chunks
from rnb.cache import RnbData, read_rnb_data
from rnb.errors import DecodeError, MalformedDocumentError, RenderError, UnresolvedChunkError
from rnb.locator import locate_chunks
from rnb.markers import TokenKind, find_tokens, tokenize


def test_mask_chunks_leaves_one_placeholder_per_executed_chunk() -> None:
    chunk_defs = locate_chunks(SAMPLE_LINES, [{"chunk_id": k, "row": v} for k, v in SAMPLE_ROWS.items()])

    masked = mask_chunks(SAMPLE_LINES, chunk_defs)

    placeholders = find_tokens(tokenize(masked), TokenKind.CHUNK_PLACEHOLDER)
    assert [token.payload for token in placeholders] == ["c1", "c2"]
    assert not any("never run" in line for line in masked)
    assert "Some prose." in masked and "Done." in masked


def test_mask_chunks_rejects_overlapping_chunks() -> None:
    chunk_defs = locate_chunks(SAMPLE_LINES, [{"chunk_id": "a", "row": 5}, {"chunk_id": "b", "row": 4}])
    with pytest.raises(MalformedDocumentError):
        mask_chunks(SAMPLE_LINES, chunk_defs)


def test_drop_unexecuted_chunks_keeps_plain_code_blocks() -> None:
    lines = ["```{r skipped}", "1", "```", "```", "plain", "```"]
    assert drop_unexecuted_chunks(lines) == ["```", "plain", "```"]


def test_archive_fills_chunks_and_appends_manifest(source_doc: Path, populated_cache: Path) -> None:
    archiver = Archiver(FakeRenderer())

    lines = archiver.archive(read_rnb_data(source_doc, populated_cache))
    tokens = tokenize(lines)

    assert find_tokens(tokens, TokenKind.CHUNK_PLACEHOLDER) == []
    assert '<pre class="r"><code>x &lt;- 1' in lines
    assert any(line.startswith('<img data-rnb-id="c2/000001.png" src="data:image/png;base64,') for line in lines)
    assert "<!-- rnb-plot-begin -->" in lines
    assert not any("never run" in line for line in lines)

    entries = [token.payload for token in find_tokens(tokens, TokenKind.MANIFEST_ENTRY)]
    paths = [entry.split(":", 1)[0] for entry in entries]
    assert paths == ["c1/000001.csv", "c2/000001.png", "chunks.json"]
    assert "c2/000001.png:@src" in entries

    assert len(find_tokens(tokens, TokenKind.DOCUMENT_SOURCE)) == 1
    assert lines[-1] == "</html>"


def test_unreferenced_placeholder_is_unresolved(tmp_path: Path) -> None:
    rnb_data = RnbData(
        source_path=tmp_path / "doc.Rmd",
        cache_path=tmp_path / "cache",
        contents=[],
        chunk_defs={},
    )
    with pytest.raises(UnresolvedChunkError):
        Archiver(FakeRenderer()).fill_chunks(["<body>", "<!-- rnb-chunk-id ghost -->", "</body>"], rnb_data)


def test_renderer_failure_becomes_render_error(source_doc: Path, populated_cache: Path) -> None:
    with pytest.raises(RenderError):
        Archiver(FailingRenderer()).archive(read_rnb_data(source_doc, populated_cache))


def test_widget_dependencies_are_injected_once(source_doc: Path, settings) -> None:
    cache_path = write_cache(
        settings.cache_path_for(source_doc),
        SAMPLE_ROWS,
        {
            "c1/000001.html": WIDGET_HTML,
            "c1/000001.json": WIDGET_DEPS,
            "c2/000001.html": WIDGET_HTML,
            "c2/000001.json": WIDGET_DEPS,
            "lib/htmlwidgets-1.0/htmlwidgets.js": WIDGET_JS,
        },
    )

    lines = Archiver(FakeRenderer()).archive(read_rnb_data(source_doc, cache_path))

    scripts = [line for line in lines if line.startswith('<script data-rnb-id="lib/htmlwidgets-1.0/htmlwidgets.js"')]
    assert len(scripts) == 1
    assert lines.index(scripts[0]) < lines.index("</head>")
    assert lines.count("<!-- rnb-htmlwidget-begin -->") == 2
    assert "<div id='w'>widget</div>" in lines
    assert "  lib/htmlwidgets-1.0/htmlwidgets.js:@src" in lines


def test_render_unevaluated_embeds_source_without_manifest() -> None:
    lines = Archiver(FakeRenderer()).render_unevaluated(SAMPLE_LINES)
    tokens = tokenize(lines)

    assert len(find_tokens(tokens, TokenKind.DOCUMENT_SOURCE)) == 1
    assert find_tokens(tokens, TokenKind.MANIFEST_BEGIN) == []
    assert 'stop("never run")' in lines


def test_only_inlined_binary_resources_are_referenced_by_attribute(source_doc: Path, settings) -> None:
    cache_path = write_cache(
        settings.cache_path_for(source_doc),
        SAMPLE_ROWS,
        {
            "c1/000001.jpg": b"\xff\xd8\xffjpeg-bytes",
            "c2/000001.png": PNG_BYTES,
            "lib/extras-1.0/logo.png": PNG_BYTES,
        },
    )

    lines = Archiver(FakeRenderer()).archive(read_rnb_data(source_doc, cache_path))
    entries = [token.payload for token in find_tokens(tokenize(lines), TokenKind.MANIFEST_ENTRY)]

    assert any(line.startswith('<img data-rnb-id="c1/000001.jpg" src="data:image/jpeg;base64,') for line in lines)
    assert "c1/000001.jpg:@src" in entries
    assert "c2/000001.png:@src" in entries
    assert f"lib/extras-1.0/logo.png:{encode_base64(PNG_BYTES)}" in entries


@pytest.mark.parametrize(
    "files",
    [
        {"c1/000001.csv": b"0,\xff\n"},
        {"c1/000001.html": b"<html><body>\xff\xfe</body></html>"},
    ],
)
def test_non_utf8_chunk_output_is_a_decode_error(source_doc: Path, settings, files) -> None:
    cache_path = write_cache(settings.cache_path_for(source_doc), SAMPLE_ROWS, files)

    with pytest.raises(DecodeError):
        Archiver(FakeRenderer()).archive(read_rnb_data(source_doc, cache_path))
