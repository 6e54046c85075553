"""Index synchronizer — keep one identity's vector records in step with its source.

Ingestion of one identity:

  0. Snapshot the metadata ``revision`` (None if the identity is new).
  1. Normalize, chunk and embed the new content. Nothing is written yet.
  2. In one write transaction:
       - re-read the revision; if it moved, another execution committed
         meanwhile → ``StoreWriteConflict`` (caller retries from step 0),
       - retire: delete every vector record and the metadata row,
       - re-describe: write the fresh metadata row (revision + 1),
       - populate: insert the new vector records,
       - clear any pending sync failure.

A provider failure in step 1 retires the identity (if nobody else committed
meanwhile) and records a sync failure, so a half-stale identity is never
served and the next sync run must retry it.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass

from kbsync.db.connection import write_transaction
from kbsync.db.repository import Repository
from kbsync.db.vectors import VectorStore
from kbsync.errors import DimensionMismatch, ProviderError, StoreWriteConflict, UnsupportedFormat
from kbsync.ingest.base import TextChunker
from kbsync.ingest.embedder import Embedder
from kbsync.ingest.events import ChangeEvent
from kbsync.ingest.locks import IdentityLocks
from kbsync.ingest.normalizer import ContentNormalizer

logger = logging.getLogger(__name__)

INGESTED = "ingested"
UNCHANGED = "unchanged"


@dataclass
class IngestResult:
    identity: str
    status: str
    retired: int = 0
    inserted: int = 0
    revision: int | None = None
    schema: str | None = None


class IndexSynchronizer:
    """Apply change events to the vector store, one identity at a time.

    Args:
        conn: Connection owned by this execution.
        embedder: Embedding adapter (shared, stateless).
        normalizer: Content normalizer (shared, stateless).
        chunker: Text chunker (shared, stateless).
        locks: Lock table shared by every execution in this process.
        metric: Distance metric used to open the vector store.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        embedder: Embedder,
        normalizer: ContentNormalizer | None = None,
        chunker: TextChunker | None = None,
        *,
        locks: IdentityLocks | None = None,
        metric: str = "cosine",
    ) -> None:
        self._conn = conn
        self.embedder = embedder
        self.normalizer = normalizer or ContentNormalizer()
        self.chunker = chunker or TextChunker()
        self.locks = locks or IdentityLocks()
        self.store = VectorStore(conn, dimensions=embedder.dimensions, metric=metric)
        self.repo = Repository(conn)

    def ingest(self, event: ChangeEvent, *, force: bool = False) -> IngestResult:
        """Re-ingest *event.identity* from *event.content*.

        Raises:
            UnsupportedFormat: The content cannot be normalized. Any previous
                version of the identity is retired.
            ProviderError: Embedding failed; the identity is retired and a
                sync failure is recorded.
            StoreWriteConflict: Another execution committed the same identity
                while this one was embedding. Nothing was written.
        """
        with self.locks.hold(event.identity):
            return self._ingest(event, force)

    def remove(self, identity: str) -> int:
        """Retire *identity*. Returns the number of vector records deleted."""
        with self.locks.hold(identity):
            with write_transaction(self._conn):
                deleted = self.store.delete_by_identity(identity)
                self.repo.clear_failure(identity)
        logger.info("Removed %s (%d vector records)", identity, deleted)
        return deleted

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ingest(self, event: ChangeEvent, force: bool) -> IngestResult:
        identity = event.identity
        existing = self.store.get_metadata(identity)
        snapshot = existing.revision if existing else None
        content_hash = event.content_hash

        if (
            not force
            and existing is not None
            and existing.content_hash == content_hash
            and self.store.count(identity) > 0
            and self.repo.get_failure(identity) is None
        ):
            logger.debug("Skipping %s: content unchanged", identity)
            return IngestResult(identity, UNCHANGED, revision=snapshot, schema=existing.schema)

        try:
            doc = self.normalizer.normalize(event)
        except UnsupportedFormat:
            self._retire_if_unchanged(identity, snapshot)
            raise

        records = self.chunker.chunk(doc.segments)
        try:
            embeddings = self.embedder.embed([r.content for r in records])
        except (ProviderError, DimensionMismatch) as exc:
            logger.error("Embedding failed for %s: %s", identity, exc)
            self._fail(identity, snapshot, exc)
            raise
        for record, embedding in zip(records, embeddings):
            record.embedding = embedding

        revision = (snapshot or 0) + 1
        with write_transaction(self._conn):
            current = self.store.revision(identity)
            if current != snapshot:
                raise StoreWriteConflict(identity, expected=snapshot, found=current)
            retired = self.store.delete_by_identity(identity)
            self.store.upsert_metadata(
                identity,
                title=doc.title,
                url=doc.url,
                schema=doc.schema,
                content_hash=content_hash,
                revision=revision,
            )
            self.store.insert_vectors(identity, records)
            self.repo.clear_failure(identity)

        logger.info(
            "Ingested %s: retired %d, inserted %d (revision %d)",
            identity,
            retired,
            len(records),
            revision,
        )
        return IngestResult(
            identity,
            INGESTED,
            retired=retired,
            inserted=len(records),
            revision=revision,
            schema=doc.schema,
        )

    def _retire_if_unchanged(self, identity: str, snapshot: int | None) -> bool:
        """Retire *identity* unless another execution committed since *snapshot*."""
        if snapshot is None:
            return False
        with write_transaction(self._conn):
            if self.store.revision(identity) != snapshot:
                return False
            self.store.delete_by_identity(identity)
        logger.warning("Retired stale version of %s", identity)
        return True

    def _fail(self, identity: str, snapshot: int | None, exc: Exception) -> None:
        with write_transaction(self._conn):
            self._retire_if_unchanged(identity, snapshot)
            self.repo.record_failure(identity, f"{type(exc).__name__}: {exc}")
