"""Folder sync — scan a source folder and apply its files to the index in parallel."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

from kbsync.db.connection import Database
from kbsync.db.repository import Repository
from kbsync.db.schema import open_db
from kbsync.db.vectors import VectorStore
from kbsync.errors import ProviderTransientError, StoreWriteConflict, UnsupportedFormat
from kbsync.ingest.base import TextChunker
from kbsync.ingest.embedder import Embedder
from kbsync.ingest.events import ChangeEvent, FileChange
from kbsync.ingest.locks import IdentityLocks
from kbsync.ingest.normalizer import ContentNormalizer, detect_kind
from kbsync.ingest.synchronizer import INGESTED, IndexSynchronizer, IngestResult

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Source
# ------------------------------------------------------------------


class FolderSource:
    """Enumerate supported files under *root* as change events.

    Hidden files and directories, and Office lock files (``~$...``), are skipped.
    """

    def __init__(self, root: Path | str, recursive: bool = True) -> None:
        self.root = Path(root)
        self.recursive = recursive

    def paths(self) -> list[Path]:
        pattern = "**/*" if self.recursive else "*"
        found = []
        for path in sorted(self.root.glob(pattern)):
            if not path.is_file():
                continue
            rel = path.relative_to(self.root)
            if any(part.startswith(".") for part in rel.parts) or path.name.startswith("~$"):
                continue
            if detect_kind(path.name) is None:
                continue
            found.append(path)
        return found

    def identities(self) -> set[str]:
        return {p.relative_to(self.root).as_posix() for p in self.paths()}

    def scan(self) -> Iterator[FileChange]:
        """One pending change per supported file; contents are read by the worker."""
        for path in self.paths():
            yield FileChange.for_path(path, root=self.root, kind=detect_kind(path.name))


# ------------------------------------------------------------------
# Worker
# ------------------------------------------------------------------


@dataclass
class SyncReport:
    ingested: list[IngestResult] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    unsupported: dict[str, str] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    removed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed and not self.unsupported


class SyncWorker:
    """Run change events through ``IndexSynchronizer`` on a thread pool.

    Every execution opens its own database connection; executions for the
    same identity are serialized by a shared ``IdentityLocks`` table. A failed
    identity is reported and never blocks the others.

    Args:
        db_path: Knowledge-base database file.
        embedder: Shared embedding adapter.
        normalizer: Shared content normalizer.
        chunker: Shared text chunker.
        workers: Thread pool size.
        max_attempts: Whole-identity attempts for conflicts and transient
            provider failures.
        metric: Vector store distance metric.
    """

    def __init__(
        self,
        db_path: Path | str,
        embedder: Embedder,
        normalizer: ContentNormalizer | None = None,
        chunker: TextChunker | None = None,
        *,
        workers: int = 4,
        max_attempts: int = 2,
        metric: str = "cosine",
    ) -> None:
        self.db_path = Path(db_path)
        self.embedder = embedder
        self.normalizer = normalizer or ContentNormalizer()
        self.chunker = chunker or TextChunker()
        self.workers = max(1, workers)
        self.max_attempts = max(1, max_attempts)
        self.metric = metric
        self.locks = IdentityLocks()
        # Apply migrations and check the store width once, before executions
        # open their own connections.
        conn = open_db(self.db_path)
        try:
            VectorStore(conn, dimensions=embedder.dimensions, metric=metric)
        finally:
            conn.close()

    def run(
        self,
        events: Iterable[ChangeEvent | FileChange],
        *,
        force: bool = False,
        on_done: Callable[[str], None] | None = None,
    ) -> SyncReport:
        """Apply *events*. Duplicate events for one identity collapse to the last one.

        ``FileChange`` contents are read inside the execution, so an unreadable
        file is reported under its own identity in ``failed``.
        """
        latest: dict[str, ChangeEvent | FileChange] = {}
        for event in events:
            latest.pop(event.identity, None)
            latest[event.identity] = event

        report = SyncReport()
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = {
                pool.submit(self._run_one, event, force): identity
                for identity, event in latest.items()
            }
            for future in as_completed(futures):
                identity = futures[future]
                try:
                    result = future.result()
                except UnsupportedFormat as exc:
                    logger.warning("Skipped %s: %s", identity, exc)
                    report.unsupported[identity] = str(exc)
                except Exception as exc:
                    logger.error("Sync failed for %s: %s", identity, exc, exc_info=True)
                    report.failed[identity] = f"{type(exc).__name__}: {exc}"
                else:
                    if result.status == INGESTED:
                        report.ingested.append(result)
                    else:
                        report.unchanged.append(identity)
                if on_done is not None:
                    on_done(identity)
        return report

    def prune(self, keep: set[str]) -> list[str]:
        """Retire every stored identity not in *keep*. Returns the removed identities."""
        conn = Database(self.db_path).connect()
        try:
            stored = [d.identity for d in VectorStore(conn, metric=self.metric).list_documents()]
            stored += [f.identity for f in Repository(conn).list_failures()]
            stale = sorted({i for i in stored if i not in keep})
            sync = self._synchronizer(conn)
            for identity in stale:
                sync.remove(identity)
            return stale
        finally:
            conn.close()

    def sync_folder(self, source: FolderSource, *, prune: bool = False, force: bool = False) -> SyncReport:
        report = self.run(source.scan(), force=force)
        if prune:
            report.removed = self.prune(source.identities())
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _synchronizer(self, conn) -> IndexSynchronizer:
        return IndexSynchronizer(
            conn,
            self.embedder,
            self.normalizer,
            self.chunker,
            locks=self.locks,
            metric=self.metric,
        )

    def _run_one(self, event: ChangeEvent | FileChange, force: bool) -> IngestResult:
        if isinstance(event, FileChange):
            event = event.read()
        conn = Database(self.db_path).connect()
        try:
            sync = self._synchronizer(conn)
            retrying = Retrying(
                retry=retry_if_exception_type((StoreWriteConflict, ProviderTransientError)),
                stop=stop_after_attempt(self.max_attempts),
                reraise=True,
            )
            for attempt in retrying:
                with attempt:
                    result = sync.ingest(event, force=force)
            return result
        finally:
            conn.close()
