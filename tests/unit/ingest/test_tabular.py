"""Tests for tabular readers and row-group segmenting."""

from __future__ import annotations

import datetime as dt
import io

import openpyxl

from kbsync.db.models import RecordMetadata
from kbsync.ingest.tabular import (
    Table,
    read_delimited,
    read_workbook,
    render_row,
    table_segments,
)


def _xlsx(sheets: dict[str, list[list]]) -> bytes:
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for title, rows in sheets.items():
        ws = wb.create_sheet(title)
        for row in rows:
            ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


_BASE = RecordMetadata(identity="listings.csv", title="Listings", url="file:///listings.csv", kind="csv")


# ---------------------------------------------------------------------------
# read_delimited
# ---------------------------------------------------------------------------


def test_read_csv():
    content = b"Price,Location,URL\n100,Marina,https://x.com/1\n200,JLT,https://x.com/2\n"
    table = read_delimited(content)
    assert table.headers == ["Price", "Location", "URL"]
    assert table.rows == [
        {"Price": "100", "Location": "Marina", "URL": "https://x.com/1"},
        {"Price": "200", "Location": "JLT", "URL": "https://x.com/2"},
    ]


def test_read_tsv_explicit_delimiter():
    table = read_delimited(b"Price\tLocation\n100\tMarina\n", delimiter="\t")
    assert table.rows == [{"Price": "100", "Location": "Marina"}]


def test_read_csv_with_bom_and_blank_lines():
    content = "\ufeffPrice,Location\n\n100,Marina\n,\n".encode("utf-8")
    table = read_delimited(content, delimiter=",")
    assert table.headers == ["Price", "Location"]
    assert table.rows == [{"Price": "100", "Location": "Marina"}]


def test_read_csv_ragged_rows():
    table = read_delimited(b"Price,Location\n100\n200,JLT,extra\n", delimiter=",")
    assert table.headers == ["Price", "Location", "column_3"]
    assert table.rows[0] == {"Price": "100", "Location": ""}
    assert table.rows[1] == {"Price": "200", "Location": "JLT", "column_3": "extra"}


def test_read_empty_csv():
    table = read_delimited(b"", delimiter=",")
    assert table.headers == []
    assert table.rows == []


# ---------------------------------------------------------------------------
# read_workbook
# ---------------------------------------------------------------------------


def test_read_workbook_one_table_per_sheet():
    content = _xlsx(
        {
            "Marina": [["Price", "Location"], [1200000.0, "Dubai Marina"]],
            "Empty": [],
            "Downtown": [["Price", "Handover"], [2500000, dt.datetime(2026, 3, 1)]],
        }
    )
    tables = read_workbook(content)
    assert [t.name for t in tables] == ["Marina", "Downtown"]
    assert tables[0].rows == [{"Price": 1200000, "Location": "Dubai Marina"}]
    assert tables[1].rows[0]["Handover"].startswith("2026-03-01")


# ---------------------------------------------------------------------------
# Segmenting
# ---------------------------------------------------------------------------


def test_render_row_skips_empty_cells():
    assert render_row({"Price": 100, "Notes": "", "URL": "https://x.com"}) == (
        "Price: 100 | URL: https://x.com"
    )


def test_table_segments_groups_rows():
    rows = [{"Price": str(i), "URL": f"https://x.com/{i}"} for i in range(7)]
    table = Table(name="", headers=["Price", "URL"], rows=rows)
    schema, segments = table_segments(table, _BASE, rows_per_segment=3)

    assert schema.row_count == 7
    assert [len(s.metadata.rows) for s in segments] == [3, 3, 1]
    first = segments[0]
    assert first.text.splitlines()[0] == "Listings"
    assert "Price: 0 | URL: https://x.com/0" in first.text
    assert first.metadata.identity == "listings.csv"
    assert first.metadata.schema == schema.describe()
    assert [c.role for c in first.metadata.columns] == ["price", "url"]
    assert first.metadata.extra == {}


def test_table_segments_respect_char_cap():
    rows = [{"Specs": "x" * 50} for _ in range(4)]
    table = Table(name="", headers=["Specs"], rows=rows)
    _, segments = table_segments(table, _BASE, rows_per_segment=10, char_cap=120)
    assert [len(s.metadata.rows) for s in segments] == [2, 2]


def test_table_segments_sheet_name_in_header_and_extra():
    table = Table(name="Marina", headers=["Price"], rows=[{"Price": "1"}])
    _, segments = table_segments(table, _BASE)
    assert segments[0].text.splitlines()[0] == "Listings (Marina)"
    assert segments[0].metadata.extra == {"sheet": "Marina"}


def test_table_segments_empty_table():
    schema, segments = table_segments(Table(name="", headers=["Price"]), _BASE)
    assert schema.is_empty
    assert segments == []
