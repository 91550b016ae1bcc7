"""Compact per-chunk console records into annotated display blocks."""
from __future__ import annotations

import csv
import html
import io
from dataclasses import dataclass
from typing import Iterator, List, Sequence

from rnb.errors import DecodeError
from rnb.markers import annotate
from rnb.models import OutputKind, OutputRecord

CODE_STYLE = "source"
PLAIN_STYLE = "output"
_COMMENT_PREFIX = "## "


@dataclass(slots=True)
class DisplayBlock:
    style: str
    text: str


def cutpoints(records: Sequence[OutputRecord]) -> List[int]:
    """Return the indices where the record kind differs from the previous record."""

    return [index for index in range(1, len(records)) if records[index].kind != records[index - 1].kind]


def _runs(records: Sequence[OutputRecord]) -> Iterator[Sequence[OutputRecord]]:
    bounds = [0, *cutpoints(records), len(records)]
    for start, end in zip(bounds, bounds[1:]):
        if end > start:
            yield records[start:end]


def compact_runs(records: Sequence[OutputRecord]) -> List[DisplayBlock]:
    """Partition records into maximal same-kind runs, one display block per run."""

    blocks: List[DisplayBlock] = []
    for run in _runs(records):
        kind = run[0].kind
        separator = "\n" if kind is OutputKind.CODE_ECHO else ""
        text = separator.join(record.text for record in run).strip()
        if not text:
            continue
        if kind is OutputKind.CODE_ECHO:
            blocks.append(DisplayBlock(style=CODE_STYLE, text=text))
        else:
            commented = _COMMENT_PREFIX + text.replace("\n", "\n" + _COMMENT_PREFIX)
            blocks.append(DisplayBlock(style=PLAIN_STYLE, text=commented))
    return blocks


def render_block(block: DisplayBlock, *, code_class: str = "r") -> str:
    escaped = html.escape(block.text, quote=False)
    if block.style == CODE_STYLE:
        body = f'<pre class="{html.escape(code_class)}"><code>{escaped}</code></pre>'
    else:
        body = f"<pre><code>{escaped}</code></pre>"
    return annotate(block.style, body)


def console_records_to_html(records: Sequence[OutputRecord], *, code_class: str = "r") -> str:
    return "\n".join(render_block(block, code_class=code_class) for block in compact_runs(records))


def read_console_records(data: bytes | str) -> List[OutputRecord]:
    """Parse the headerless ``type,text`` CSV a chunk console log is stored as."""

    try:
        text = data.decode("utf-8") if isinstance(data, bytes) else data
    except UnicodeDecodeError as exc:
        raise DecodeError("Console log is not valid UTF-8", cause=exc) from exc
    try:
        rows = list(csv.reader(io.StringIO(text, newline="")))
    except csv.Error as exc:
        raise DecodeError("Malformed console log", cause=exc) from exc

    records: List[OutputRecord] = []
    for row in rows:
        if not row:
            continue
        try:
            kind = OutputKind(int(row[0]))
        except ValueError as exc:
            raise DecodeError(f"Invalid console record type {row[0]!r}", cause=exc) from exc
        records.append(OutputRecord(kind=kind, text=row[1] if len(row) > 1 else ""))
    return records


def write_console_records(records: Sequence[OutputRecord]) -> str:
    buffer = io.StringIO(newline="")
    writer = csv.writer(buffer, lineterminator="\n")
    for record in records:
        writer.writerow([int(record.kind), record.text])
    return buffer.getvalue()


__all__ = [
    "CODE_STYLE",
    "DisplayBlock",
    "PLAIN_STYLE",
    "compact_runs",
    "console_records_to_html",
    "cutpoints",
    "read_console_records",
    "render_block",
    "write_console_records",
]
