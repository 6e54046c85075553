"""Tests for Repository: sync failures and stats."""

from __future__ import annotations

from kbsync.db.models import RecordMetadata, VectorRecord
from kbsync.db.repository import Repository
from kbsync.db.vectors import VectorStore


def test_record_failure_creates_row(tmp_db):
    repo = Repository(tmp_db)
    failure = repo.record_failure("a.csv", "ProviderTransientError: timeout")
    assert failure is not None
    assert failure.identity == "a.csv"
    assert failure.attempts == 1
    assert "timeout" in failure.last_error


def test_record_failure_increments_attempts(tmp_db):
    repo = Repository(tmp_db)
    repo.record_failure("a.csv", "first")
    failure = repo.record_failure("a.csv", "second")
    assert failure.attempts == 2
    assert failure.last_error == "second"


def test_clear_failure(tmp_db):
    repo = Repository(tmp_db)
    repo.record_failure("a.csv", "boom")
    repo.clear_failure("a.csv")
    assert repo.get_failure("a.csv") is None
    repo.clear_failure("a.csv")  # idempotent


def test_list_failures(tmp_db):
    repo = Repository(tmp_db)
    repo.record_failure("b.csv", "x")
    repo.record_failure("a.csv", "y")
    assert {f.identity for f in repo.list_failures()} == {"a.csv", "b.csv"}


def test_long_error_truncated(tmp_db):
    failure = Repository(tmp_db).record_failure("a.csv", "e" * 5000)
    assert len(failure.last_error) == 2000


def test_stats_empty(tmp_db):
    stats = Repository(tmp_db).stats()
    assert stats.documents == 0
    assert stats.vectors == 0
    assert stats.sessions == 0
    assert stats.turns == 0
    assert stats.failures == 0
    assert stats.last_ingest is None


def test_stats_counts(tmp_db):
    store = VectorStore(tmp_db)
    store.upsert_metadata("a.csv")
    store.insert_vectors(
        "a.csv",
        [VectorRecord(content="x", metadata=RecordMetadata(identity="a.csv"), embedding=[1.0, 0.0])],
    )
    tmp_db.execute(
        "INSERT INTO conversation_turns (session_id, role, content) VALUES ('s1', 'user', 'hi')"
    )
    tmp_db.commit()
    repo = Repository(tmp_db)
    repo.record_failure("b.csv", "x")

    stats = repo.stats()
    assert stats.documents == 1
    assert stats.vectors == 1
    assert stats.sessions == 1
    assert stats.turns == 1
    assert stats.failures == 1
    assert stats.last_ingest is not None
