"""Vector store: document metadata + embedded chunks in SQLite (sqlite-vec).

Embeddings are stored as float32 blobs in a plain table and ranked with
sqlite-vec's scalar distance functions, which keeps metadata filtering and
tie-breaking in ordinary SQL:

    ORDER BY distance ASC, id ASC      -- ties → earliest insert first

All mutations are scoped by document identity. Each mutating method joins the
caller's open transaction (see ``write_transaction``) so the synchronizer can
retire, re-describe and populate one identity atomically.
"""

from __future__ import annotations

import json
import sqlite3
import struct
from typing import Any

import sqlite_vec

from kbsync.db.connection import write_transaction
from kbsync.db.models import Document, RecordMetadata, SearchHit, VectorRecord
from kbsync.errors import DimensionMismatch

_DISTANCE_FN: dict[str, str] = {
    "cosine": "vec_distance_cosine",
    "l2": "vec_distance_l2",
}

_DIMENSIONS_KEY = "embedding_dimensions"


class VectorStore:
    """Persistent mapping from vector id to (embedding, content, metadata).

    Args:
        conn: Open connection with sqlite-vec loaded and migrations applied.
        dimensions: Expected embedding width. If the store already has a width
            recorded, a different value raises DimensionMismatch; if not, the
            width is recorded on the first insert.
        metric: 'cosine' (default) or 'l2'.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        dimensions: int | None = None,
        metric: str = "cosine",
    ) -> None:
        if metric not in _DISTANCE_FN:
            raise ValueError(f"Unknown metric '{metric}' — use one of {sorted(_DISTANCE_FN)}")
        self._conn = conn
        self.metric = metric
        stored = self._stored_dimensions()
        if stored is not None and dimensions is not None and stored != dimensions:
            raise DimensionMismatch(expected=stored, got=dimensions)
        self._dimensions = stored if stored is not None else dimensions

    @property
    def dimensions(self) -> int | None:
        return self._dimensions

    # ------------------------------------------------------------------
    # Document metadata
    # ------------------------------------------------------------------

    def upsert_metadata(
        self,
        identity: str,
        *,
        title: str = "",
        url: str = "",
        schema: str | None = None,
        content_hash: str = "",
        revision: int = 1,
    ) -> None:
        """Insert or overwrite the metadata row for *identity*."""
        with write_transaction(self._conn):
            self._conn.execute(
                """
                INSERT INTO documents (id, title, url, schema, content_hash, revision)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    url = excluded.url,
                    schema = excluded.schema,
                    content_hash = excluded.content_hash,
                    revision = excluded.revision,
                    created_at = datetime('now')
                """,
                (identity, title, url, schema, content_hash, revision),
            )

    def get_metadata(self, identity: str) -> Document | None:
        row = self._conn.execute(
            "SELECT id, title, url, created_at, schema, content_hash, revision "
            "FROM documents WHERE id = ?",
            (identity,),
        ).fetchone()
        return _row_to_document(row) if row else None

    def list_documents(self) -> list[Document]:
        """Return all metadata rows, most recently ingested first."""
        rows = self._conn.execute(
            "SELECT id, title, url, created_at, schema, content_hash, revision "
            "FROM documents ORDER BY created_at DESC, id"
        ).fetchall()
        return [_row_to_document(r) for r in rows]

    def revision(self, identity: str) -> int | None:
        """Current revision of *identity*, or None if it has no metadata row."""
        row = self._conn.execute(
            "SELECT revision FROM documents WHERE id = ?", (identity,)
        ).fetchone()
        return row[0] if row else None

    # ------------------------------------------------------------------
    # Vectors
    # ------------------------------------------------------------------

    def delete_by_identity(self, identity: str) -> int:
        """Delete every vector record and the metadata row of *identity*.

        Idempotent: returns 0 if nothing existed.
        """
        with write_transaction(self._conn):
            cur = self._conn.execute("DELETE FROM vectors WHERE identity = ?", (identity,))
            self._conn.execute("DELETE FROM documents WHERE id = ?", (identity,))
        return cur.rowcount

    def insert_vectors(self, identity: str, records: list[VectorRecord]) -> list[int]:
        """Insert *records* for *identity*; returns the store-assigned ids in order.

        Raises:
            ValueError: If a record's metadata names a different identity or has
                no embedding.
            DimensionMismatch: If an embedding's width differs from the store's.
        """
        for record in records:
            if record.metadata.identity and record.metadata.identity != identity:
                raise ValueError(
                    f"Record belongs to '{record.metadata.identity}', not '{identity}'"
                )
            if record.embedding is None:
                raise ValueError("Cannot insert a vector record without an embedding")

        ids: list[int] = []
        with write_transaction(self._conn):
            for record in records:
                self._record_dimensions(len(record.embedding))
                record.metadata.identity = identity
                cur = self._conn.execute(
                    "INSERT INTO vectors (content, metadata, embedding) VALUES (?, ?, ?)",
                    (
                        record.content,
                        record.metadata.to_json(),
                        sqlite_vec.serialize_float32(record.embedding),
                    ),
                )
                record.id = cur.lastrowid
                ids.append(cur.lastrowid)
        return ids

    def get_vectors(self, identity: str) -> list[VectorRecord]:
        """Return all records of *identity* (with embeddings) in insertion order."""
        rows = self._conn.execute(
            "SELECT id, content, metadata, embedding FROM vectors WHERE identity = ? ORDER BY id",
            (identity,),
        ).fetchall()
        return [
            VectorRecord(
                id=r["id"],
                content=r["content"],
                metadata=RecordMetadata.from_json(r["metadata"]),
                embedding=_deserialize(r["embedding"]),
            )
            for r in rows
        ]

    def count(self, identity: str | None = None) -> int:
        if identity is None:
            return self._conn.execute("SELECT COUNT(*) FROM vectors").fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM vectors WHERE identity = ?", (identity,)
        ).fetchone()[0]

    # ------------------------------------------------------------------
    # Similarity search
    # ------------------------------------------------------------------

    def similarity_search(
        self,
        query_embedding: list[float],
        top_k: int | None = None,
        metadata_filter: dict[str, Any] | None = None,
    ) -> list[SearchHit]:
        """Rank records by distance to *query_embedding*, closest first.

        Args:
            query_embedding: Vector of the store's dimensionality.
            top_k: Maximum results; None returns every matching record.
            metadata_filter: JSON containment pattern applied to record metadata
                (e.g. ``{"identity": "listings.xlsx"}``).
        """
        self._check_dimensions(len(query_embedding))
        fn = _DISTANCE_FN[self.metric]
        sql = f"SELECT id, content, metadata, {fn}(embedding, ?) AS distance FROM vectors"
        params: list[Any] = [sqlite_vec.serialize_float32(query_embedding)]
        if metadata_filter:
            sql += " WHERE json_contains(metadata, ?)"
            params.append(json.dumps(metadata_filter))
        sql += " ORDER BY distance ASC, id ASC LIMIT ?"
        params.append(-1 if top_k is None else top_k)

        hits: list[SearchHit] = []
        for row in self._conn.execute(sql, params).fetchall():
            distance = float(row["distance"])
            hits.append(
                SearchHit(
                    record=VectorRecord(
                        id=row["id"],
                        content=row["content"],
                        metadata=RecordMetadata.from_json(row["metadata"]),
                    ),
                    distance=distance,
                    score=self._score(distance),
                )
            )
        return hits

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _score(self, distance: float) -> float:
        if self.metric == "cosine":
            return 1.0 - distance
        return 1.0 / (1.0 + distance)

    def _stored_dimensions(self) -> int | None:
        row = self._conn.execute(
            "SELECT value FROM store_settings WHERE key = ?", (_DIMENSIONS_KEY,)
        ).fetchone()
        return int(row[0]) if row else None

    def _check_dimensions(self, width: int) -> None:
        if self._dimensions is not None and width != self._dimensions:
            raise DimensionMismatch(expected=self._dimensions, got=width)

    def _record_dimensions(self, width: int) -> None:
        """Pin the store width on first insert. Caller holds the write transaction."""
        self._check_dimensions(width)
        self._conn.execute(
            "INSERT OR IGNORE INTO store_settings (key, value) VALUES (?, ?)",
            (_DIMENSIONS_KEY, str(self._dimensions or width)),
        )
        self._dimensions = self._stored_dimensions()
        self._check_dimensions(width)


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        identity=row["id"],
        title=row["title"],
        url=row["url"],
        created_at=row["created_at"],
        schema=row["schema"],
        content_hash=row["content_hash"],
        revision=row["revision"],
    )


def _deserialize(blob: bytes) -> list[float]:
    return list(struct.unpack(f"{len(blob) // 4}f", blob))
