"""Schema extractor — describe a table's columns and their semantic roles.

The description string is stored on the document metadata row and on every
tabular vector record, so downstream consumers (the retrieval filter, the
response generator) can interpret column semantics without re-deriving them.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from kbsync.db.models import ColumnSpec

EMPTY_SCHEMA = "<empty schema>"

# Ordered: first match wins. Patterns are matched against the lower-cased header.
_ROLE_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("url", re.compile(r"\b(url|link|links|website|web|href|listing page)\b")),
    ("price", re.compile(r"price|cost|rent|fee|amount|\b(aed|usd|eur|gbp)\b|\$|€|£")),
    ("size", re.compile(r"\bsize\b|sq\.? ?ft|sqft|sqm|\bm2\b|square|built.?up|plot")),
    ("bedrooms", re.compile(r"\bbed(room)?s?\b|\bbr\b|\bbhk\b")),
    ("bathrooms", re.compile(r"\bbath(room)?s?\b")),
    ("location", re.compile(r"location|address|\barea\b|city|district|neighbou?rhood|community|region|zone")),
    ("specs", re.compile(r"spec|feature|amenit|description|details|notes")),
    ("property_type", re.compile(r"\btype\b|category|unit")),
    ("title", re.compile(r"title|\bname\b|project|property|listing")),
    ("contact", re.compile(r"contact|phone|mobile|email|agent|broker")),
    ("date", re.compile(r"date|handover|completion|available")),
]

_ROLE_LABELS: dict[str, str] = {
    "url": "link (URL)",
    "price": "monetary amount",
    "size": "size / area",
    "bedrooms": "bedroom count",
    "bathrooms": "bathroom count",
    "location": "location",
    "specs": "specifications",
    "property_type": "category",
    "title": "name / title",
    "contact": "contact details",
    "date": "date",
}

_URL_VALUE_RE = re.compile(r"^https?://\S+$", re.IGNORECASE)

# Headers that name a role outright. Among several columns with the same role
# ("Service Fee", "Price"), these win over synonyms.
_PRIMARY_HEADERS: dict[str, re.Pattern[str]] = {
    "price": re.compile(r"\b(price|asking)\b"),
    "url": re.compile(r"\b(url|link)\b"),
}


@dataclass
class TabularSchema:
    """Structured schema of one table."""

    columns: list[ColumnSpec] = field(default_factory=list)
    row_count: int = 0

    @property
    def is_empty(self) -> bool:
        return self.row_count == 0

    def column_for(self, role: str) -> str | None:
        """Name of the column that best carries *role*, or None."""
        return column_for_role(self.columns, role)

    def describe(self) -> str:
        if self.is_empty:
            return EMPTY_SCHEMA
        parts = []
        for col in self.columns:
            label = _ROLE_LABELS.get(col.role or "")
            parts.append(f"{col.name} ({label})" if label else col.name)
        return f"Table with {self.row_count} rows. Columns: " + ", ".join(parts)


def normalize_headers(headers: Sequence[Any]) -> list[str]:
    """Strip headers, give blanks positional placeholders, and de-duplicate.

    Order is preserved: ``["Price", "", "Price"]`` → ``["Price", "column_2", "Price_2"]``.
    """
    result: list[str] = []
    seen: dict[str, int] = {}
    for i, raw in enumerate(headers):
        name = str(raw).strip() if raw is not None else ""
        if not name:
            name = f"column_{i + 1}"
        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        else:
            seen[name] = 1
        result.append(name)
    return result


def infer_role(header: str, values: Sequence[Any] = ()) -> str | None:
    """Guess the semantic role of a column from its header, then its values."""
    lowered = header.lower()
    for role, pattern in _ROLE_PATTERNS:
        if pattern.search(lowered):
            return role

    non_empty = [str(v).strip() for v in values if v not in (None, "") and str(v).strip()]
    if non_empty and sum(bool(_URL_VALUE_RE.match(v)) for v in non_empty) * 2 >= len(non_empty):
        return "url"
    return None


def column_for_role(columns: Sequence[ColumnSpec], role: str) -> str | None:
    """Name of the column carrying *role*, preferring headers that name it outright.

    A header equal to the role wins, then one matching the role's primary
    word, then the first column tagged with the role.
    """
    primary = _PRIMARY_HEADERS.get(role)
    best: tuple[int, str] | None = None
    for col in columns:
        if col.role != role:
            continue
        header = col.name.strip().lower()
        if header == role:
            rank = 0
        elif primary is not None and primary.search(header):
            rank = 1
        else:
            rank = 2
        if best is None or rank < best[0]:
            best = (rank, col.name)
    return best[1] if best else None


def extract_schema(
    rows: Sequence[Mapping[str, Any]],
    headers: Sequence[Any] | None = None,
) -> TabularSchema:
    """Build the schema for *rows* with the given header list.

    If *headers* is empty, column names are taken from the rows' keys in order
    of first appearance. An empty row sequence yields an empty schema whose
    description is ``EMPTY_SCHEMA``.
    """
    if headers:
        names = normalize_headers(headers)
    else:
        names = []
        for row in rows:
            for key in row:
                if key not in names:
                    names.append(key)
        names = normalize_headers(names)

    if not rows:
        return TabularSchema(columns=[ColumnSpec(name=n) for n in names], row_count=0)

    columns = [
        ColumnSpec(name=name, role=infer_role(name, [row.get(name) for row in rows]))
        for name in names
    ]
    return TabularSchema(columns=columns, row_count=len(rows))


def describe_schema(
    rows: Sequence[Mapping[str, Any]],
    headers: Sequence[Any] | None = None,
) -> str:
    """Schema description string for *rows* (``EMPTY_SCHEMA`` if there are none)."""
    return extract_schema(rows, headers).describe()
