"""kbsync database layer."""

from kbsync.db.connection import Database, write_transaction
from kbsync.db.migrations import MIGRATIONS, run_migrations
from kbsync.db.repository import Repository
from kbsync.db.schema import initialize, open_db
from kbsync.db.vectors import VectorStore

__all__ = [
    "Database",
    "initialize",
    "open_db",
    "run_migrations",
    "MIGRATIONS",
    "Repository",
    "VectorStore",
    "write_transaction",
]
