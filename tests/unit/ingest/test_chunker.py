"""Tests for TextChunker."""

from __future__ import annotations

import pytest

from kbsync.db.models import RecordMetadata
from kbsync.ingest.base import Segment, TextChunker


def _seg(text: str, identity: str = "doc.md") -> Segment:
    return Segment(text=text, metadata=RecordMetadata(identity=identity, title="Doc", kind="markdown"))


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def test_invalid_arguments():
    with pytest.raises(ValueError):
        TextChunker(chunk_size=0)
    with pytest.raises(ValueError):
        TextChunker(overlap=1.0)


def test_count_tokens_approximation():
    assert TextChunker.count_tokens("") == 1
    assert TextChunker.count_tokens("a" * 400) == 100


# ---------------------------------------------------------------------------
# chunk()
# ---------------------------------------------------------------------------


def test_short_segment_is_one_chunk():
    records = TextChunker(chunk_size=100).chunk([_seg("  Villa with a garden.  ")])
    assert len(records) == 1
    assert records[0].content == "Villa with a garden."
    assert records[0].metadata.identity == "doc.md"
    assert records[0].metadata.chunk_index == 0
    assert records[0].embedding is None


def test_chunk_index_runs_across_segments():
    chunker = TextChunker(chunk_size=100)
    records = chunker.chunk([_seg("first"), _seg("second"), _seg("third")])
    assert [r.metadata.chunk_index for r in records] == [0, 1, 2]


def test_segment_metadata_not_mutated():
    seg = _seg("hello")
    TextChunker().chunk([seg, seg])
    assert seg.metadata.chunk_index == 0


def test_blank_segments_skipped():
    assert TextChunker().chunk([_seg("   \n\n  ")]) == []


def test_long_segment_split_under_cap():
    paragraph = "The villa has a private pool and a large garden. " * 10
    text = "\n\n".join([paragraph.strip()] * 6)
    chunker = TextChunker(chunk_size=100, overlap=0.1)
    records = chunker.chunk([_seg(text)])
    assert len(records) > 1
    assert all(len(r.content) <= chunker.char_cap for r in records)
    assert [r.metadata.chunk_index for r in records] == list(range(len(records)))


# ---------------------------------------------------------------------------
# split()
# ---------------------------------------------------------------------------


def test_split_empty():
    assert TextChunker().split("   ") == []


def test_split_packs_small_paragraphs():
    chunker = TextChunker(chunk_size=100)
    chunks = chunker.split("one\n\ntwo\n\nthree")
    assert chunks == ["one\n\ntwo\n\nthree"]


def test_split_overlap_carries_tail():
    chunker = TextChunker(chunk_size=25, overlap=0.2)  # cap 100 chars, overlap 20
    first = "alpha " * 15  # 90 chars
    second = "omega " * 10  # 60 chars
    chunks = chunker.split(f"{first.strip()}\n\n{second.strip()}")
    assert len(chunks) == 2
    assert chunks[1].endswith(second.strip())
    assert chunks[1].startswith("alpha")


def test_split_zero_overlap():
    chunker = TextChunker(chunk_size=25, overlap=0.0)
    first = "alpha " * 15
    second = "omega " * 10
    chunks = chunker.split(f"{first.strip()}\n\n{second.strip()}")
    assert chunks == [first.strip(), second.strip()]


def test_oversized_sentence_uses_fixed_window():
    chunker = TextChunker(chunk_size=10, overlap=0.0)  # cap 40 chars
    text = "x" * 100
    chunks = chunker.split(text)
    assert all(len(c) <= 40 for c in chunks)
    assert "".join(chunks) == text
