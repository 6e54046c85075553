"""Domain models for the kbsync database layer."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Document:
    """Metadata row for one document identity."""

    identity: str
    title: str = ""
    url: str = ""
    schema: str | None = None
    content_hash: str = ""
    revision: int = 1
    created_at: str | None = None


@dataclass
class ColumnSpec:
    """A spreadsheet column and its inferred semantic role (None if unknown)."""

    name: str
    role: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "role": self.role}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ColumnSpec:
        return cls(name=str(data.get("name", "")), role=data.get("role"))


_TYPED_KEYS = ("identity", "title", "url", "kind", "chunk_index", "schema", "columns", "rows")


@dataclass
class RecordMetadata:
    """Typed view of a vector record's JSON metadata.

    ``extra`` is the reserved extension field: any key not modelled here is
    kept there so ad hoc fields survive a storage round trip.
    """

    identity: str
    title: str = ""
    url: str = ""
    kind: str = ""
    chunk_index: int = 0
    schema: str | None = None
    columns: list[ColumnSpec] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_tabular(self) -> bool:
        return bool(self.rows)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "identity": self.identity,
            "title": self.title,
            "url": self.url,
            "kind": self.kind,
            "chunk_index": self.chunk_index,
        }
        if self.schema is not None:
            data["schema"] = self.schema
        if self.columns:
            data["columns"] = [c.to_dict() for c in self.columns]
        if self.rows:
            data["rows"] = self.rows
        if self.extra:
            data["extra"] = self.extra
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecordMetadata:
        extra = dict(data.get("extra") or {})
        for key, value in data.items():
            if key not in _TYPED_KEYS and key != "extra":
                extra[key] = value
        return cls(
            identity=str(data.get("identity", "")),
            title=str(data.get("title", "")),
            url=str(data.get("url", "")),
            kind=str(data.get("kind", "")),
            chunk_index=int(data.get("chunk_index", 0)),
            schema=data.get("schema"),
            columns=[ColumnSpec.from_dict(c) for c in data.get("columns") or []],
            rows=list(data.get("rows") or []),
            extra=extra,
        )

    @classmethod
    def from_json(cls, raw: str) -> RecordMetadata:
        return cls.from_dict(json.loads(raw) if raw else {})


@dataclass
class VectorRecord:
    """One embedded chunk. ``id`` is assigned by the store on insert."""

    content: str
    metadata: RecordMetadata
    embedding: list[float] | None = None
    id: int | None = None


@dataclass
class SearchHit:
    """A similarity-search result: record plus distance (lower = closer)."""

    record: VectorRecord
    distance: float
    score: float


@dataclass
class ConversationTurn:
    session_id: str
    role: str
    content: str
    id: int | None = None
    created_at: str | None = None


@dataclass
class SyncFailure:
    """An identity whose last ingestion failed and must be retried."""

    identity: str
    attempts: int
    last_error: str
    failed_at: str | None = None
