"""Tests for kbsync remove command."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from kbsync.cli.main import app
from kbsync.db.connection import Database
from kbsync.db.repository import Repository
from kbsync.db.vectors import VectorStore

runner = CliRunner()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _synced(project: Path) -> Path:
    result = runner.invoke(app, ["sync"])
    assert result.exit_code == 0, result.output
    return project / ".kbsync.db"


def _identities(db_path: Path) -> set[str]:
    conn = Database(db_path).connect()
    try:
        return {d.identity for d in VectorStore(conn).list_documents()}
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# kbsync remove — no DB / unknown identity
# ---------------------------------------------------------------------------


def test_remove_no_db_exits_1(project: Path) -> None:
    result = runner.invoke(app, ["remove", "marina.csv", "--db", str(project / "missing.db"), "--yes"])
    assert result.exit_code == 1
    assert "kbsync init" in result.output


def test_remove_unknown_identity_exits_0(project: Path, listings: Path) -> None:
    _synced(project)
    result = runner.invoke(app, ["remove", "nope.csv", "--yes"])
    assert result.exit_code == 0
    assert "not in the knowledge base" in result.output


# ---------------------------------------------------------------------------
# kbsync remove — happy path
# ---------------------------------------------------------------------------


def test_remove_with_yes(project: Path, listings: Path) -> None:
    db_path = _synced(project)
    result = runner.invoke(app, ["remove", "marina.csv", "--yes"])
    assert result.exit_code == 0, result.output
    assert "Removed: marina.csv" in result.output
    assert _identities(db_path) == {"notes.md"}

    conn = Database(db_path).connect()
    try:
        assert VectorStore(conn).count("marina.csv") == 0
    finally:
        conn.close()


def test_remove_confirmed_interactively(project: Path, listings: Path) -> None:
    db_path = _synced(project)
    result = runner.invoke(app, ["remove", "notes.md"], input="y\n")
    assert result.exit_code == 0, result.output
    assert _identities(db_path) == {"marina.csv"}


def test_remove_cancelled(project: Path, listings: Path) -> None:
    db_path = _synced(project)
    result = runner.invoke(app, ["remove", "notes.md"], input="n\n")
    assert result.exit_code == 0
    assert "Cancelled" in result.output
    assert _identities(db_path) == {"marina.csv", "notes.md"}


def test_remove_clears_pending_failure(project: Path, listings: Path) -> None:
    db_path = _synced(project)
    conn = Database(db_path).connect()
    try:
        Repository(conn).record_failure("gone.xlsx", "ProviderTransientError: timeout")
    finally:
        conn.close()

    result = runner.invoke(app, ["remove", "gone.xlsx", "--yes"])
    assert result.exit_code == 0, result.output
    assert "Pending retry: yes" in result.output

    conn = Database(db_path).connect()
    try:
        assert Repository(conn).get_failure("gone.xlsx") is None
    finally:
        conn.close()
