"""Text chunker — paragraph/sentence-aligned splits with a hard cap and overlap.

Strategy for one normalized segment:
  1. Split on blank lines (paragraph / section / page boundaries).
  2. Paragraphs over the cap are split into sentences.
  3. Sentences still over the cap fall back to a fixed character window.
  4. Units are packed greedily up to the cap; each new chunk starts with the
     trailing ``overlap`` fraction of the previous one (snapped to a word
     boundary) so context survives the cut.

Token counting uses a 4-chars-per-token approximation; no external tokenizer
dependency is required.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace

from kbsync.db.models import RecordMetadata, VectorRecord

_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")


@dataclass
class Segment:
    """A normalized unit of source text plus the metadata it inherits.

    ``metadata`` carries the owning identity, title/url and, for tabular
    sources, the schema description, columns and row group.
    """

    text: str
    metadata: RecordMetadata


class TextChunker:
    """Split segments into bounded chunks ready for embedding.

    Args:
        chunk_size: Hard cap per chunk, in approximate tokens.
        overlap: Fraction of the cap carried over from the previous chunk.
    """

    def __init__(self, chunk_size: int = 400, overlap: float = 0.15) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not 0.0 <= overlap < 1.0:
            raise ValueError("overlap must be in [0.0, 1.0)")
        self.chunk_size = chunk_size
        self.overlap = overlap

    @property
    def char_cap(self) -> int:
        return self.chunk_size * 4

    @staticmethod
    def count_tokens(text: str) -> int:
        """Approximate token count: 4 characters ≈ 1 token."""
        return max(1, len(text) // 4)

    def chunk(self, segments: list[Segment]) -> list[VectorRecord]:
        """Chunk every segment; ``chunk_index`` runs across the whole document."""
        records: list[VectorRecord] = []
        for segment in segments:
            if len(segment.text) <= self.char_cap:
                pieces = [segment.text.strip()]
            else:
                pieces = self.split(segment.text)
            for piece in pieces:
                if not piece:
                    continue
                meta = replace(segment.metadata, chunk_index=len(records))
                records.append(VectorRecord(content=piece, metadata=meta))
        return records

    def split(self, text: str) -> list[str]:
        """Split *text* into chunks of at most ``char_cap`` characters."""
        if not text.strip():
            return []

        units: list[str] = []
        for paragraph in _PARAGRAPH_RE.split(text):
            paragraph = paragraph.strip()
            if not paragraph:
                continue
            if len(paragraph) <= self.char_cap:
                units.append(paragraph)
                continue
            for sentence in _SENTENCE_RE.split(paragraph):
                sentence = sentence.strip()
                if not sentence:
                    continue
                if len(sentence) <= self.char_cap:
                    units.append(sentence)
                else:
                    units.extend(self._split_fixed_window(sentence))

        return self._pack(units)

    def _pack(self, units: list[str]) -> list[str]:
        chunks: list[str] = []
        current = ""
        for unit in units:
            if not current:
                current = unit
                continue
            candidate = f"{current}\n\n{unit}"
            if len(candidate) <= self.char_cap:
                current = candidate
                continue
            chunks.append(current)
            tail = self._tail(current)
            current = f"{tail}\n\n{unit}" if tail and len(tail) + 2 + len(unit) <= self.char_cap else unit
        if current:
            chunks.append(current)
        return chunks

    def _tail(self, text: str) -> str:
        """Trailing overlap of *text*, starting on a word boundary."""
        n = int(self.char_cap * self.overlap)
        if n <= 0:
            return ""
        if len(text) <= n:
            return text.strip()
        tail = text[-n:]
        cut = tail.find(" ")
        if cut != -1:
            tail = tail[cut + 1 :]
        return tail.strip()

    def _split_fixed_window(self, text: str) -> list[str]:
        """Split *text* into fixed-window segments with overlap.

        Window size = ``char_cap`` characters.
        Overlap     = ``self.overlap`` fraction of window size.
        """
        if not text.strip():
            return []

        char_size = self.char_cap
        overlap_chars = int(char_size * self.overlap)
        step = max(1, char_size - overlap_chars)

        segments: list[str] = []
        pos = 0
        length = len(text)

        while pos < length:
            end = min(pos + char_size, length)
            segment = text[pos:end].strip()
            if segment:
                segments.append(segment)
            if end >= length:
                break
            pos += step

        return segments
