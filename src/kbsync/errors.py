"""Exception taxonomy shared by the ingestion and query pipelines.

Ingestion failures are scoped to one document identity and never block other
identities. Query-time failures are turned into a fallback reply by the chat
service; raw provider errors never reach the conversation channel.

``NoQualifyingResults`` is deliberately absent: an empty filter outcome is a
valid result value (see ``kbsync.rag.retriever``), not an error.
"""

from __future__ import annotations


class KbsyncError(Exception):
    """Base class for every error raised by kbsync."""


class UnsupportedFormat(KbsyncError):
    """The normalizer cannot interpret the source kind (or the file is unreadable as that kind)."""

    def __init__(self, kind: str, detail: str = "") -> None:
        self.kind = kind
        self.detail = detail
        msg = f"Unsupported source format: {kind!r}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


class ProviderError(KbsyncError):
    """Base for failures of an external capability provider (embedding, generation)."""


class ProviderTransientError(ProviderError):
    """Timeout, rate limit, connection or server error. Safe to retry with backoff."""


class ProviderMalformedInput(ProviderError):
    """The provider rejected the request itself. Retrying the same batch cannot succeed."""


class StoreWriteConflict(KbsyncError):
    """Another ingestion of the same identity committed while this one was in flight."""

    def __init__(self, identity: str, expected: int | None, found: int | None) -> None:
        self.identity = identity
        self.expected = expected
        self.found = found
        super().__init__(
            f"Concurrent ingestion detected for '{identity}' "
            f"(revision {expected} expected, {found} found)"
        )


class DimensionMismatch(KbsyncError, ValueError):
    """An embedding does not match the store's fixed dimensionality."""

    def __init__(self, expected: int, got: int) -> None:
        self.expected = expected
        self.got = got
        super().__init__(f"Embedding has {got} dimensions, store expects {expected}")
