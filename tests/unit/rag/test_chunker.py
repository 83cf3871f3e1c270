"""Tests for the fixed-window chunker."""

from __future__ import annotations

import pytest

from lifebutler.rag.chunker import (
    DEFAULT_MAX_CHUNK_CHARS,
    DEFAULT_OVERLAP_CHARS,
    ChunkProcessor,
    chunk_text,
    reassemble,
)


def test_defaults_follow_token_approximation():
    assert DEFAULT_MAX_CHUNK_CHARS == 2048
    assert DEFAULT_OVERLAP_CHARS == 200


def test_empty_text_gives_no_chunks():
    assert chunk_text("") == []
    assert ChunkProcessor().chunk("meals", "m1", "") == []


def test_short_text_is_single_chunk():
    text = "DOMAIN: MEALS\nMEAL: pizza"
    assert chunk_text(text, 100, 10) == [text]


def test_text_exactly_window_size_is_single_chunk():
    assert chunk_text("x" * 10, 10, 3) == ["x" * 10]


def test_window_advances_by_size_minus_overlap():
    chunks = chunk_text("abcdefghij", 4, 1)
    assert chunks == ["abcd", "defg", "ghij"]


def test_chunks_are_not_stripped():
    chunks = chunk_text("  a  b  c  ", 4, 0)
    assert "".join(chunks) == "  a  b  c  "


@pytest.mark.parametrize("max_chars,overlap", [(0, 0), (10, 10), (10, 11), (5, -1)])
def test_invalid_sizes_raise(max_chars, overlap):
    with pytest.raises(ValueError):
        ChunkProcessor(max_chars, overlap)
    with pytest.raises(ValueError):
        chunk_text("abc", max_chars, overlap)


def test_processor_metadata():
    chunks = ChunkProcessor(4, 1).chunk("journals", "j9", "abcdefghij")
    assert [c.chunk_index for c in chunks] == [0, 1, 2]
    assert all(c.source_object_type == "journals" and c.source_object_id == "j9" for c in chunks)
    assert [c.overlap_chars for c in chunks] == [0, 1, 1]


def test_last_chunk_overlap_when_window_is_short():
    # step 6: windows [0,8) and [6,10); the last window overlaps by 2
    chunks = ChunkProcessor(8, 2).chunk("meals", "m1", "0123456789")
    assert [c.text for c in chunks] == ["01234567", "6789"]
    assert chunks[1].overlap_chars == 2


@pytest.mark.parametrize("length,max_chars,overlap", [(1, 1, 0), (57, 8, 3), (200, 16, 15), (1000, 100, 0)])
def test_reassemble_reconstructs_text(length, max_chars, overlap):
    text = "".join(chr(ord("a") + i % 26) for i in range(length))
    chunks = ChunkProcessor(max_chars, overlap).chunk("events", "e1", text)
    assert reassemble(chunks) == text


def test_reassemble_empty():
    assert reassemble([]) == ""
