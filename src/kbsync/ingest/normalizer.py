"""Content normalizer — turn a raw source document into text segments.

Dispatch by source kind:
  tabular   csv, tsv, xlsx   → row-group segments with schema metadata
  document  pdf, docx, html, markdown → text with blank-line boundaries
  freeform  text             → decoded text

Unknown kinds, and files that cannot be parsed as their declared kind, raise
``UnsupportedFormat`` before anything is written to the store.
"""

from __future__ import annotations

import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import PurePosixPath

import pypdf.errors
from docx.opc.exceptions import PackageNotFoundError
from openpyxl.utils.exceptions import InvalidFileException

from kbsync.db.models import RecordMetadata
from kbsync.errors import UnsupportedFormat
from kbsync.ingest import documents, tabular
from kbsync.ingest.base import Segment
from kbsync.ingest.events import ChangeEvent
from kbsync.ingest.schema_extractor import EMPTY_SCHEMA

logger = logging.getLogger(__name__)

TABULAR_KINDS = frozenset({"csv", "tsv", "xlsx"})
DOCUMENT_KINDS = frozenset({"pdf", "docx", "html", "markdown"})
FREEFORM_KINDS = frozenset({"text"})
SUPPORTED_KINDS = TABULAR_KINDS | DOCUMENT_KINDS | FREEFORM_KINDS

_EXTENSION_KINDS: dict[str, str] = {
    ".csv": "csv",
    ".tsv": "tsv",
    ".xlsx": "xlsx",
    ".xlsm": "xlsx",
    ".pdf": "pdf",
    ".docx": "docx",
    ".html": "html",
    ".htm": "html",
    ".md": "markdown",
    ".markdown": "markdown",
    ".txt": "text",
    ".text": "text",
    ".rst": "text",
    ".log": "text",
}

_MIME_KINDS: dict[str, str] = {
    "text/csv": "csv",
    "text/tab-separated-values": "tsv",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/vnd.ms-excel.sheet.macroenabled.12": "xlsx",
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "text/html": "html",
    "text/markdown": "markdown",
    "text/plain": "text",
}

# Parser errors that mean "not a valid file of this kind".
_PARSE_ERRORS = (
    pypdf.errors.PyPdfError,
    zipfile.BadZipFile,
    PackageNotFoundError,
    InvalidFileException,
    KeyError,
    ValueError,
)


def detect_kind(filename: str, mime_type: str | None = None) -> str | None:
    """Return the source kind for *filename* / *mime_type*, or None if unknown.

    The MIME type wins when it is recognised; otherwise the extension decides.
    """
    if mime_type:
        kind = _MIME_KINDS.get(mime_type.split(";")[0].strip().lower())
        if kind:
            return kind
    return _EXTENSION_KINDS.get(PurePosixPath(filename).suffix.lower())


@dataclass
class NormalizedDocument:
    """Normalizer output for one change event."""

    identity: str
    kind: str
    title: str
    url: str
    schema: str | None = None
    segments: list[Segment] = field(default_factory=list)


class ContentNormalizer:
    """Convert change events into segments ready for chunking.

    Args:
        rows_per_segment: Maximum spreadsheet rows per row-group segment.
        chunk_size: Chunk cap in approximate tokens; row groups stay under it.
    """

    def __init__(self, rows_per_segment: int = 5, chunk_size: int = 400) -> None:
        if rows_per_segment < 1:
            raise ValueError("rows_per_segment must be >= 1")
        self.rows_per_segment = rows_per_segment
        self.chunk_size = chunk_size

    def normalize(self, event: ChangeEvent) -> NormalizedDocument:
        """Normalize *event*.

        Raises:
            UnsupportedFormat: Unknown kind, or content unreadable as that kind.
        """
        kind = event.kind or detect_kind(event.filename, event.mime_type)
        if kind not in SUPPORTED_KINDS:
            raise UnsupportedFormat(
                kind or PurePosixPath(event.filename).suffix or event.mime_type or "unknown"
            )

        try:
            if kind in TABULAR_KINDS:
                return self._normalize_tabular(event, kind)
            return self._normalize_text(event, kind)
        except _PARSE_ERRORS as exc:
            logger.debug("Failed to parse %s as %s", event.identity, kind, exc_info=True)
            raise UnsupportedFormat(kind, f"unreadable: {exc}") from exc

    # ------------------------------------------------------------------
    # Tabular
    # ------------------------------------------------------------------

    def _normalize_tabular(self, event: ChangeEvent, kind: str) -> NormalizedDocument:
        if kind == "xlsx":
            tables = tabular.read_workbook(event.content)
        else:
            delimiter = "\t" if kind == "tsv" else None
            tables = [tabular.read_delimited(event.content, delimiter=delimiter)]

        title = event.title or PurePosixPath(event.filename).stem
        base = RecordMetadata(identity=event.identity, title=title, url=event.url, kind=kind)
        doc = NormalizedDocument(identity=event.identity, kind=kind, title=title, url=event.url)

        descriptions: list[str] = []
        for table in tables:
            schema, segments = tabular.table_segments(
                table,
                base,
                rows_per_segment=self.rows_per_segment,
                char_cap=self.chunk_size * 4,
            )
            if schema.is_empty:
                continue
            description = schema.describe()
            descriptions.append(f"[{table.name}] {description}" if len(tables) > 1 else description)
            doc.segments.extend(segments)

        doc.schema = "\n".join(descriptions) if descriptions else EMPTY_SCHEMA
        logger.debug(
            "Normalized %s: %d table(s), %d segment(s)", event.identity, len(tables), len(doc.segments)
        )
        return doc

    # ------------------------------------------------------------------
    # Documents and free text
    # ------------------------------------------------------------------

    def _normalize_text(self, event: ChangeEvent, kind: str) -> NormalizedDocument:
        title = event.title
        if kind == "pdf":
            text = documents.extract_pdf(event.content)
        elif kind == "docx":
            text = documents.extract_docx(event.content)
        elif kind == "html":
            text = documents.extract_html(event.content)
            title = title or documents.html_title(event.content)
        else:
            text = documents.decode_text(event.content)

        title = title or PurePosixPath(event.filename).stem
        doc = NormalizedDocument(identity=event.identity, kind=kind, title=title, url=event.url)
        if text.strip():
            meta = RecordMetadata(identity=event.identity, title=title, url=event.url, kind=kind)
            doc.segments.append(Segment(text=text, metadata=meta))
        return doc
