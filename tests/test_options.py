import pytest

from rnb.errors import ChunkOptionsError
from rnb.options import evaluate_chunk_options, parse_value, split_options


def test_setup_chunk_is_excluded_from_output() -> None:
    assert evaluate_chunk_options("r setup") == {"include": False}


def test_label_before_first_comma_is_dropped() -> None:
    options = evaluate_chunk_options("r plot-1, echo=FALSE, fig.width=7, fig.asp=0.6")
    assert options == {"echo": False, "fig.width": 7, "fig.asp": 0.6}


def test_setup_chunk_options_are_merged() -> None:
    options = evaluate_chunk_options("r setup, message=F")
    assert options == {"include": False, "message": False}


def test_quoted_commas_and_expressions_survive_splitting() -> None:
    options = evaluate_chunk_options("r, fig.cap='A, B', results=\"asis\", dev=c('png', 'pdf')")

    assert options["fig.cap"] == "A, B"
    assert options["results"] == "asis"
    assert options["dev"] == "c('png', 'pdf')"


def test_wrong_type_for_known_option_is_rejected() -> None:
    with pytest.raises(ChunkOptionsError):
        evaluate_chunk_options("r, echo='yes'")
    with pytest.raises(ChunkOptionsError):
        evaluate_chunk_options("r, fig.width=TRUE")


def test_unbalanced_options_are_rejected() -> None:
    with pytest.raises(ChunkOptionsError):
        split_options("x=c(1, 2")


def test_parse_value_literals() -> None:
    assert parse_value("NULL") is None
    assert parse_value("12L") == 12
    assert parse_value("1e3") == 1000.0
    assert parse_value("some_var") == "some_var"


def test_null_is_accepted_for_any_option() -> None:
    assert evaluate_chunk_options("r, fig.cap=NULL") == {"fig.cap": None}
