"""Repository for sync bookkeeping: failed identities and knowledge-base stats.

Document metadata and vectors live in ``VectorStore``; this module owns the
``sync_failures`` table that turns a failed ingestion into a mandatory retry.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass

from kbsync.db.connection import write_transaction
from kbsync.db.models import SyncFailure


@dataclass
class StoreStats:
    documents: int
    vectors: int
    sessions: int
    turns: int
    failures: int
    last_ingest: str | None = None


class Repository:
    """Data access for sync failures and aggregate statistics.

    Wraps an open sqlite3.Connection owned by the caller.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------
    # Sync failures
    # ------------------------------------------------------------------

    def record_failure(self, identity: str, error: str) -> SyncFailure | None:
        """Mark *identity* for retry, incrementing its attempt counter."""
        with write_transaction(self._conn):
            self._conn.execute(
                """
                INSERT INTO sync_failures (identity, attempts, last_error)
                VALUES (?, 1, ?)
                ON CONFLICT(identity) DO UPDATE SET
                    attempts = sync_failures.attempts + 1,
                    last_error = excluded.last_error,
                    failed_at = datetime('now')
                """,
                (identity, error[:2000]),
            )
        return self.get_failure(identity)

    def clear_failure(self, identity: str) -> None:
        with write_transaction(self._conn):
            self._conn.execute("DELETE FROM sync_failures WHERE identity = ?", (identity,))

    def get_failure(self, identity: str) -> SyncFailure | None:
        row = self._conn.execute(
            "SELECT identity, attempts, last_error, failed_at FROM sync_failures WHERE identity = ?",
            (identity,),
        ).fetchone()
        return _row_to_failure(row) if row else None

    def list_failures(self) -> list[SyncFailure]:
        rows = self._conn.execute(
            "SELECT identity, attempts, last_error, failed_at FROM sync_failures "
            "ORDER BY failed_at, identity"
        ).fetchall()
        return [_row_to_failure(r) for r in rows]

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self) -> StoreStats:
        def _one(sql: str):
            return self._conn.execute(sql).fetchone()[0]

        return StoreStats(
            documents=_one("SELECT COUNT(*) FROM documents"),
            vectors=_one("SELECT COUNT(*) FROM vectors"),
            sessions=_one("SELECT COUNT(DISTINCT session_id) FROM conversation_turns"),
            turns=_one("SELECT COUNT(*) FROM conversation_turns"),
            failures=_one("SELECT COUNT(*) FROM sync_failures"),
            last_ingest=_one("SELECT MAX(created_at) FROM documents"),
        )


def _row_to_failure(row: sqlite3.Row) -> SyncFailure:
    return SyncFailure(
        identity=row["identity"],
        attempts=row["attempts"],
        last_error=row["last_error"],
        failed_at=row["failed_at"],
    )
