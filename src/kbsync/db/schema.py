"""Database initialization."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from kbsync.db.connection import Database
from kbsync.db.migrations import run_migrations


def initialize(conn: sqlite3.Connection) -> None:
    """Initialize the database schema via the migration runner (idempotent)."""
    run_migrations(conn)


def open_db(db_path: Path | str) -> sqlite3.Connection:
    """Open (or create) the knowledge-base database and run migrations."""
    conn = Database(db_path).connect()
    initialize(conn)
    return conn
