import pytest

from rnb.errors import MalformedDocumentError
from rnb.locator import fence_open_lines, locate_chunks

LINES = [
    "Intro",
    "```{r c1}",
    "x <- 1",
    "```",
    "",
    "Text",
    "",
    "```{r c2}",
    "plot(x)",
    "```",
]


def test_fence_open_lines_are_one_based() -> None:
    assert fence_open_lines(LINES) == [2, 8]


def test_locate_chunks_resolves_closest_opening_fence() -> None:
    located = locate_chunks(LINES, [{"chunk_id": "c1", "row": 3}, {"chunk_id": "c2", "row": 9}])

    assert (located["c1"].chunk_start, located["c1"].chunk_end) == (2, 4)
    assert (located["c2"].chunk_start, located["c2"].chunk_end) == (8, 10)
    assert located["c2"].source_row == 9


def test_locate_chunks_keeps_entry_options() -> None:
    located = locate_chunks(LINES, [{"chunk_id": "c1", "row": 3, "options": {"echo": False}}])
    assert located["c1"].options == {"echo": False}


def test_row_before_every_fence_is_rejected() -> None:
    with pytest.raises(MalformedDocumentError):
        locate_chunks(LINES, [{"chunk_id": "early", "row": 0}])


def test_duplicate_chunk_ids_are_rejected() -> None:
    with pytest.raises(MalformedDocumentError):
        locate_chunks(LINES, [{"chunk_id": "c1", "row": 3}, {"chunk_id": "c1", "row": 9}])


def test_entry_without_row_is_rejected() -> None:
    with pytest.raises(MalformedDocumentError):
        locate_chunks(LINES, [{"chunk_id": "c1"}])
