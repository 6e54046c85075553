"""Shared pytest fixtures."""

from __future__ import annotations

import re

import pytest

from kbsync.db.connection import Database
from kbsync.db.schema import initialize
from kbsync.errors import ProviderMalformedInput, ProviderTransientError
from kbsync.ingest.embedder import Embedder, EmbeddingProvider

_WORD_RE = re.compile(r"[a-z]+")

DEFAULT_VOCAB = ("location", "garden", "pool", "villa", "marina")


class KeywordProvider(EmbeddingProvider):
    """Deterministic embeddings: one dimension per vocabulary word plus a bias.

    A text's vector counts each vocabulary word it contains; the trailing bias
    dimension keeps every vector non-zero so cosine distance is defined.
    """

    def __init__(self, vocab: tuple[str, ...] = DEFAULT_VOCAB) -> None:
        self.vocab = vocab
        self.calls: list[list[str]] = []

    @property
    def dimensions(self) -> int:
        return len(self.vocab) + 1

    def vector(self, text: str) -> list[float]:
        words = _WORD_RE.findall(text.lower())
        return [float(words.count(w)) for w in self.vocab] + [1.0]

    def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self.vector(t) for t in texts]


class FlakyProvider(KeywordProvider):
    """Fails the first *failures* calls with *error*, then behaves normally."""

    def __init__(self, failures: int, error: Exception | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.failures = failures
        self.error = error or ProviderTransientError("timeout")

    def embed(self, texts: list[str]) -> list[list[float]]:
        if self.failures > 0:
            self.failures -= 1
            self.calls.append(list(texts))
            raise self.error
        return super().embed(texts)


class BrokenProvider(KeywordProvider):
    """Always rejects the batch."""

    def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        raise ProviderMalformedInput("context window exceeded")


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".kbsync.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def keyword_provider():
    return KeywordProvider()


@pytest.fixture
def make_embedder():
    """Factory: wrap a provider in an Embedder with no backoff wait."""

    def _make(provider: EmbeddingProvider | None = None, **kwargs) -> Embedder:
        provider = provider or KeywordProvider()
        kwargs.setdefault("dimensions", getattr(provider, "dimensions", None))
        kwargs.setdefault("backoff_min", 0)
        kwargs.setdefault("backoff_max", 0)
        return Embedder(provider, **kwargs)

    return _make


@pytest.fixture
def providers():
    """The fake provider classes, for tests that need a specific failure mode."""

    class _Providers:
        keyword = KeywordProvider
        flaky = FlakyProvider
        broken = BrokenProvider

    return _Providers
