"""Conversation memory: an append-only, per-session log of turns in SQLite."""

from __future__ import annotations

import sqlite3

from kbsync.db.connection import write_transaction
from kbsync.db.models import ConversationTurn

ROLES = frozenset({"user", "assistant", "system"})


class ConversationMemory:
    """Read and append conversation turns.

    Turns are ordered by their autoincrement id, so history is chronological
    per session regardless of clock resolution.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def append(self, session_id: str, role: str, content: str) -> ConversationTurn:
        if role not in ROLES:
            raise ValueError(f"Unknown role '{role}' — use one of {sorted(ROLES)}")
        with write_transaction(self._conn):
            cur = self._conn.execute(
                "INSERT INTO conversation_turns (session_id, role, content) VALUES (?, ?, ?)",
                (session_id, role, content),
            )
        return self._get(cur.lastrowid)

    def history(self, session_id: str, limit: int | None = None) -> list[ConversationTurn]:
        """The most recent *limit* turns of *session_id* (all if None), oldest first."""
        if limit is not None and limit <= 0:
            return []
        rows = self._conn.execute(
            """
            SELECT id, session_id, role, content, created_at FROM (
                SELECT * FROM conversation_turns
                WHERE session_id = ?
                ORDER BY id DESC
                LIMIT ?
            ) ORDER BY id ASC
            """,
            (session_id, -1 if limit is None else limit),
        ).fetchall()
        return [_row_to_turn(r) for r in rows]

    def sessions(self) -> list[str]:
        """Known session ids, most recently active first."""
        rows = self._conn.execute(
            "SELECT session_id FROM conversation_turns GROUP BY session_id ORDER BY MAX(id) DESC"
        ).fetchall()
        return [r[0] for r in rows]

    def _get(self, turn_id: int) -> ConversationTurn:
        row = self._conn.execute(
            "SELECT id, session_id, role, content, created_at FROM conversation_turns WHERE id = ?",
            (turn_id,),
        ).fetchone()
        return _row_to_turn(row)


def _row_to_turn(row: sqlite3.Row) -> ConversationTurn:
    return ConversationTurn(
        id=row["id"],
        session_id=row["session_id"],
        role=row["role"],
        content=row["content"],
        created_at=row["created_at"],
    )
