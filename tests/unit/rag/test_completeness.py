"""Tests for listing completeness rules."""

from __future__ import annotations

import math

import pytest

from kbsync.db.models import ColumnSpec, RecordMetadata, VectorRecord
from kbsync.rag.completeness import (
    NO_LISTING_DATA,
    CompletenessPolicy,
    Listing,
    RequirePrice,
    RequireUrl,
    has_price,
    is_well_formed_url,
    listings_for,
)

_COLUMNS = [ColumnSpec("Price", "price"), ColumnSpec("Location", "location"), ColumnSpec("URL", "url")]


def _tabular(*rows: dict) -> VectorRecord:
    return VectorRecord(
        content="rows",
        metadata=RecordMetadata(identity="a.csv", columns=list(_COLUMNS), rows=list(rows)),
    )


def _text(content: str) -> VectorRecord:
    return VectorRecord(
        content=content,
        metadata=RecordMetadata(identity="a.md", url="file:///a.md", kind="markdown"),
    )


# ------------------------------------------------------------------
# Field checks
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    "value, expected",
    [
        (1200000, True),
        (0, True),
        (99.5, True),
        ("AED 1,200,000", True),
        ("1.2M", True),
        ("", False),
        ("   ", False),
        ("N/A", False),
        ("POA", False),
        ("Price on request", False),
        ("-", False),
        ("call agent", False),
        (None, False),
        (True, False),
        (math.nan, False),
    ],
)
def test_has_price(value, expected):
    assert has_price(value) is expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("https://example.com/listing/1", True),
        ("http://example.co.uk", True),
        ("http://localhost:8000/x", True),
        ("  https://example.com  ", True),
        ("example.com/listing", False),
        ("ftp://example.com/file", False),
        ("https://", False),
        ("https://nodot", False),
        ("https://exa mple.com", False),
        ("https://example..com", False),
        ("https://example.com:99999", False),
        ("", False),
        (None, False),
        (42, False),
    ],
)
def test_is_well_formed_url(value, expected):
    assert is_well_formed_url(value) is expected


# ------------------------------------------------------------------
# Listing extraction
# ------------------------------------------------------------------


def test_listings_from_rows_use_column_roles():
    record = _tabular(
        {"Price": "AED 100", "Location": "JLT", "URL": "https://x.com/1"},
        {"Price": "", "Location": "Palm", "URL": "https://x.com/2"},
    )
    assert listings_for(record) == [
        Listing(price="AED 100", url="https://x.com/1"),
        Listing(price="", url="https://x.com/2"),
    ]


def test_listings_without_url_column():
    record = VectorRecord(
        content="rows",
        metadata=RecordMetadata(
            identity="a.csv",
            columns=[ColumnSpec("Price", "price")],
            rows=[{"Price": 10}],
        ),
    )
    assert listings_for(record) == [Listing(price=10, url=None)]


def test_listings_from_text():
    record = _text("Sea view villa, price: AED 4,500,000. See https://example.com/villa/7.")
    listings = listings_for(record)
    assert len(listings) == 1
    assert "4,500,000" in listings[0].price
    assert listings[0].url == "https://example.com/villa/7"


def test_text_without_listing_data():
    assert listings_for(_text("The community has parks and schools.")) == []


def test_document_source_url_does_not_count():
    record = _text("Three bedroom villa for $2,000,000 freehold")
    assert listings_for(record) == [Listing(price="$2,000,000", url=None)]



def test_each_link_keeps_its_own_price():
    record = _text(
        "Marina flat AED 1,200,000 https://example.com/l/1 and "
        "Palm villa AED 5,000,000 https://example.com/l/2"
    )
    assert listings_for(record) == [
        Listing(price="AED 1,200,000", url="https://example.com/l/1"),
        Listing(price="AED 5,000,000", url="https://example.com/l/2"),
    ]


def test_price_written_after_link():
    listings = listings_for(_text("See https://example.com/l/3 - asking AED 750,000"))
    assert len(listings) == 1
    assert listings[0].url == "https://example.com/l/3"
    assert "750,000" in listings[0].price


def test_price_does_not_leak_across_paragraphs():
    record = _text(
        "Villa Marina with a garden. https://example.com/l/1\n\n"
        "Villa Palm with a pool. Price: AED 5,000,000. https://example.com/l/2"
    )
    listings = listings_for(record)
    assert [item.url for item in listings] == ["https://example.com/l/1", "https://example.com/l/2"]
    assert listings[0].price is None
    assert "5,000,000" in listings[1].price
    assert CompletenessPolicy.default().violation(record) == RequirePrice.name


def test_price_column_preferred_over_fee_column():
    record = VectorRecord(
        content="rows",
        metadata=RecordMetadata(
            identity="a.csv",
            columns=[
                ColumnSpec("Property", "title"),
                ColumnSpec("Service Fee", "price"),
                ColumnSpec("Price", "price"),
                ColumnSpec("URL", "url"),
            ],
            rows=[{"Property": "Palm", "Service Fee": "AED 5,000", "Price": "", "URL": "https://x.com/2"}],
        ),
    )
    assert listings_for(record) == [Listing(price="", url="https://x.com/2")]
    assert CompletenessPolicy.default().violation(record) == RequirePrice.name

# ------------------------------------------------------------------
# Policy
# ------------------------------------------------------------------


def test_complete_tabular_record_passes():
    record = _tabular({"Price": "AED 100", "Location": "JLT", "URL": "https://x.com/1"})
    assert CompletenessPolicy.default().violation(record) is None


def test_missing_price_fails_whole_record():
    record = _tabular(
        {"Price": "AED 100", "Location": "JLT", "URL": "https://x.com/1"},
        {"Price": "", "Location": "Palm", "URL": "https://x.com/2"},
    )
    assert CompletenessPolicy.default().violation(record) == RequirePrice.name


def test_malformed_url_fails():
    record = _tabular({"Price": "AED 100", "Location": "JLT", "URL": "www.x.com/1"})
    assert CompletenessPolicy.default().violation(record) == RequireUrl.name


def test_no_listing_data_fails():
    assert CompletenessPolicy.default().violation(_text("Nice area.")) == NO_LISTING_DATA


def test_price_checked_before_url():
    record = _tabular({"Price": "", "Location": "JLT", "URL": ""})
    assert CompletenessPolicy.default().violation(record) == RequirePrice.name


def test_rules_can_be_disabled():
    record = _tabular({"Price": "AED 100", "Location": "JLT", "URL": ""})
    assert CompletenessPolicy.default(require_url=False).is_complete(record)
    assert not CompletenessPolicy.default().is_complete(record)


def test_empty_policy_accepts_everything():
    assert CompletenessPolicy([]).violation(_text("Nice area.")) is None


def test_text_record_complete():
    record = _text("Villa at USD 900,000 https://example.com/v/1")
    assert CompletenessPolicy.default().is_complete(record)
