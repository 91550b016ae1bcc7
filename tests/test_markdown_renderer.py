import pytest

from rnb.errors import RenderError
from rnb.render import MarkdownRenderer, RenderHooks
from rnb.render.markdown_renderer import split_front_matter


def test_markers_survive_on_their_own_lines() -> None:
    text = "# Title\n\n<!-- rnb-chunk-id c1 -->\n\nSome *prose*."

    rendered = MarkdownRenderer().render(text, RenderHooks.annotated())
    lines = rendered.splitlines()

    assert "<!-- rnb-chunk-id c1 -->" in lines
    assert "<h1>Title</h1>" in lines
    assert "</head>" in lines and lines[-1] == "</html>"


def test_chunk_fences_are_rendered_as_source_blocks() -> None:
    text = "```{r c1, echo=TRUE}\nx <- 1\n```"

    rendered = MarkdownRenderer().render(text, RenderHooks.annotated())

    assert "<!-- rnb-source-begin -->" in rendered
    assert "x &lt;- 1" in rendered
    assert 'class="language-r"' in rendered


def test_front_matter_sets_title() -> None:
    rendered = MarkdownRenderer().render("---\ntitle: Demo report\n---\nBody", RenderHooks())
    assert "<title>Demo report</title>" in rendered
    assert "title:" not in rendered


def test_split_front_matter_without_header() -> None:
    assert split_front_matter("plain text") == ({}, "plain text")


def test_invalid_front_matter_is_a_render_error() -> None:
    with pytest.raises(RenderError):
        MarkdownRenderer().render("---\ntitle: [unclosed\n---\nBody", RenderHooks())
