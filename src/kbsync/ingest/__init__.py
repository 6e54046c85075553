"""kbsync ingest pipeline — normalizer, chunker, embedder, index synchronizer."""

from kbsync.ingest.base import Segment, TextChunker
from kbsync.ingest.embedder import Embedder, EmbeddingProvider, LiteLLMEmbeddingProvider
from kbsync.ingest.events import ChangeEvent, FileChange
from kbsync.ingest.locks import IdentityLocks
from kbsync.ingest.normalizer import ContentNormalizer, NormalizedDocument, detect_kind
from kbsync.ingest.schema_extractor import EMPTY_SCHEMA, TabularSchema, extract_schema
from kbsync.ingest.synchronizer import IndexSynchronizer, IngestResult
from kbsync.ingest.worker import FolderSource, SyncReport, SyncWorker

__all__ = [
    "ChangeEvent",
    "FileChange",
    "ContentNormalizer",
    "EMPTY_SCHEMA",
    "Embedder",
    "EmbeddingProvider",
    "FolderSource",
    "IdentityLocks",
    "IndexSynchronizer",
    "IngestResult",
    "LiteLLMEmbeddingProvider",
    "NormalizedDocument",
    "Segment",
    "SyncReport",
    "SyncWorker",
    "TabularSchema",
    "TextChunker",
    "detect_kind",
    "extract_schema",
]
