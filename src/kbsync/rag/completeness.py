"""Completeness rules for listing records.

A record may only ground an answer if every listing it carries has a usable
price and a well-formed URL. Listing data comes from:

  - tabular records: the row group in metadata, with the price / URL columns
    located through their schema roles;
  - document records: one listing per http(s) link in the chunk text, paired
    with the price written next to it in the same paragraph (a paragraph with
    a price and no link is one listing without a URL). The document's own
    source URL does not count.

A record with no listing data at all fails.
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import urlsplit

from kbsync.db.models import VectorRecord
from kbsync.ingest.schema_extractor import column_for_role

# Values that mean "no price" even though the cell is not blank.
EMPTY_PRICE_TOKENS = frozenset(
    {
        "",
        "-",
        "--",
        "?",
        "n/a",
        "na",
        "nil",
        "none",
        "null",
        "tbd",
        "tba",
        "poa",
        "on request",
        "price on request",
    }
)

_CURRENCY = r"(?:[$€£¥₹]|\b(?:USD|EUR|GBP|AED|INR|SAR|QAR|CHF|CAD|AUD)\b)"
_AMOUNT = r"\d[\d,.]*"
_PRICE_RE = re.compile(
    rf"{_CURRENCY}\s?{_AMOUNT}"
    rf"|{_AMOUNT}\s?{_CURRENCY}"
    rf"|\b(?:price|rent|cost|asking)\b\s*(?:is|of|from)?\s*[:=\-]?\s*{_CURRENCY}?\s?{_AMOUNT}",
    re.IGNORECASE,
)
_URL_RE = re.compile(r"https?://[^\s<>\"'()\[\]]+", re.IGNORECASE)
_URL_TRAILING = ".,;:!?"
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")


# ------------------------------------------------------------------
# Field checks
# ------------------------------------------------------------------


def has_price(value: Any) -> bool:
    """True if *value* is a usable price (a number, or text containing a digit)."""
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return not math.isnan(value)
    text = str(value).strip()
    if text.lower() in EMPTY_PRICE_TOKENS:
        return False
    return any(ch.isdigit() for ch in text)


def is_well_formed_url(value: Any) -> bool:
    """http(s) scheme, a host with a dot (or localhost), no whitespace."""
    if not isinstance(value, str):
        return False
    text = value.strip()
    if not text or any(ch.isspace() for ch in text):
        return False
    try:
        parts = urlsplit(text)
        host = parts.hostname
        parts.port  # noqa: B018 - raises ValueError on a malformed port
    except ValueError:
        return False
    if parts.scheme.lower() not in ("http", "https") or not host:
        return False
    if host == "localhost":
        return True
    labels = host.split(".")
    return len(labels) >= 2 and all(labels)


# ------------------------------------------------------------------
# Listing extraction
# ------------------------------------------------------------------


@dataclass
class Listing:
    price: Any = None
    url: Any = None


def listings_for(record: VectorRecord) -> list[Listing]:
    """Listing fields carried by *record* (empty if it carries none)."""
    meta = record.metadata
    if meta.rows:
        price_col = column_for_role(meta.columns, "price")
        url_col = column_for_role(meta.columns, "url")
        return [
            Listing(
                price=row.get(price_col) if price_col else None,
                url=row.get(url_col) if url_col else None,
            )
            for row in meta.rows
        ]

    listings: list[Listing] = []
    for paragraph in _PARAGRAPH_SPLIT_RE.split(record.content):
        listings.extend(_paragraph_listings(paragraph))
    return listings


def _paragraph_listings(text: str) -> list[Listing]:
    """One listing per link in *text*, or one price-only listing if it has no link.

    A link takes the last price written before it (after the previous link),
    else the first price after it (before the next link).
    """
    prices = [(m.start(), m.group(0)) for m in _PRICE_RE.finditer(text)]
    links = [(m.start(), m.end(), m.group(0).rstrip(_URL_TRAILING)) for m in _URL_RE.finditer(text)]
    if not links:
        return [Listing(price=prices[0][1])] if prices else []

    listings = []
    for i, (start, end, url) in enumerate(links):
        prev_end = links[i - 1][1] if i > 0 else 0
        next_start = links[i + 1][0] if i + 1 < len(links) else len(text)
        before = [p for pos, p in prices if prev_end <= pos < start]
        after = [p for pos, p in prices if end <= pos < next_start]
        price = before[-1] if before else (after[0] if after else None)
        listings.append(Listing(price=price, url=url))
    return listings


# ------------------------------------------------------------------
# Rules
# ------------------------------------------------------------------


class CompletenessRule(Protocol):
    name: str

    def check(self, listing: Listing) -> bool: ...


class RequirePrice:
    name = "missing price"

    def check(self, listing: Listing) -> bool:
        return has_price(listing.price)


class RequireUrl:
    name = "missing or malformed URL"

    def check(self, listing: Listing) -> bool:
        return is_well_formed_url(listing.url)


NO_LISTING_DATA = "no listing data"


class CompletenessPolicy:
    """Apply an ordered list of rules to every listing of a record."""

    def __init__(self, rules: Sequence[CompletenessRule]) -> None:
        self.rules = list(rules)

    @classmethod
    def default(cls, require_price: bool = True, require_url: bool = True) -> CompletenessPolicy:
        rules: list[CompletenessRule] = []
        if require_price:
            rules.append(RequirePrice())
        if require_url:
            rules.append(RequireUrl())
        return cls(rules)

    def violation(self, record: VectorRecord) -> str | None:
        """Name of the first rule *record* fails, or None if it is complete."""
        if not self.rules:
            return None
        listings = listings_for(record)
        if not listings:
            return NO_LISTING_DATA
        for rule in self.rules:
            if not all(rule.check(listing) for listing in listings):
                return rule.name
        return None

    def is_complete(self, record: VectorRecord) -> bool:
        return self.violation(record) is None
