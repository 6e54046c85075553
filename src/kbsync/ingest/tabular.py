"""Tabular readers — CSV/TSV via the csv module, XLSX via openpyxl.

Each table becomes:
  - a schema description (see ``schema_extractor``), and
  - segments of at most ``rows_per_segment`` rows, each rendered as
    ``Column: value | Column: value`` lines and carrying the raw rows in its
    metadata so the retrieval filter can inspect listing fields.
"""

from __future__ import annotations

import csv
import datetime as _dt
import io
from dataclasses import dataclass, field
from typing import Any

import openpyxl

from kbsync.db.models import RecordMetadata
from kbsync.ingest.base import Segment
from kbsync.ingest.schema_extractor import TabularSchema, extract_schema, normalize_headers


@dataclass
class Table:
    """One header row plus data rows keyed by normalized header name."""

    name: str
    headers: list[str]
    rows: list[dict[str, Any]] = field(default_factory=list)


# ------------------------------------------------------------------
# Readers
# ------------------------------------------------------------------


def read_delimited(content: bytes, delimiter: str | None = None, name: str = "") -> Table:
    """Parse CSV/TSV bytes. The first non-empty line is the header row."""
    text = content.decode("utf-8-sig", errors="replace")
    if delimiter is None:
        try:
            delimiter = csv.Sniffer().sniff(text[:4096], delimiters=",;\t|").delimiter
        except csv.Error:
            delimiter = ","
    records = [r for r in csv.reader(io.StringIO(text), delimiter=delimiter) if _has_value(r)]
    return _to_table(name, records)


def read_workbook(content: bytes) -> list[Table]:
    """Parse an XLSX workbook; one Table per non-empty worksheet."""
    wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    try:
        tables = []
        for sheet in wb.worksheets:
            records = [list(r) for r in sheet.iter_rows(values_only=True) if _has_value(r)]
            if records:
                tables.append(_to_table(sheet.title, records))
        return tables
    finally:
        wb.close()


def _to_table(name: str, records: list[list[Any]]) -> Table:
    if not records:
        return Table(name=name, headers=[])
    headers = normalize_headers(records[0])
    rows = []
    for record in records[1:]:
        cells = [_cell(v) for v in record]
        # Ragged rows: extra cells get placeholder headers, short rows are padded.
        if len(cells) > len(headers):
            headers = normalize_headers(headers + [None] * (len(cells) - len(headers)))
        cells += [""] * (len(headers) - len(cells))
        rows.append(dict(zip(headers, cells)))
    return Table(name=name, headers=headers, rows=rows)


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (_dt.datetime, _dt.date, _dt.time)):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return value.strip()
    return value


def _has_value(record: Any) -> bool:
    return any(v is not None and str(v).strip() for v in record)


# ------------------------------------------------------------------
# Segmenting
# ------------------------------------------------------------------


def render_row(row: dict[str, Any]) -> str:
    """``Price: 1200 | Location: Marina`` — empty cells are omitted."""
    return " | ".join(f"{k}: {v}" for k, v in row.items() if v not in ("", None))


def table_segments(
    table: Table,
    base: RecordMetadata,
    *,
    rows_per_segment: int = 5,
    char_cap: int = 1600,
) -> tuple[TabularSchema, list[Segment]]:
    """Group *table* rows into segments bounded by row count and size.

    Returns the table schema and its segments. A table with no data rows yields
    an empty schema and no segments.
    """
    schema = extract_schema(table.rows, table.headers)
    description = schema.describe()
    if schema.is_empty:
        return schema, []

    header = f"{base.title} ({table.name})" if table.name and base.title else base.title or table.name

    segments: list[Segment] = []
    group: list[dict[str, Any]] = []
    lines: list[str] = []
    size = 0

    def _flush() -> None:
        if not group:
            return
        text = "\n".join(([header] if header else []) + lines)
        meta = RecordMetadata(
            identity=base.identity,
            title=base.title,
            url=base.url,
            kind=base.kind,
            schema=description,
            columns=list(schema.columns),
            rows=list(group),
            extra={"sheet": table.name} if table.name else {},
        )
        segments.append(Segment(text=text, metadata=meta))

    for row in table.rows:
        line = render_row(row)
        if group and (len(group) >= rows_per_segment or size + len(line) + 1 > char_cap):
            _flush()
            group, lines, size = [], [], 0
        group.append(row)
        lines.append(line)
        size += len(line) + 1
    _flush()

    return schema, segments
