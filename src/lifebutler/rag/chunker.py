"""Fixed-window chunker for record text.

Window and overlap are measured in characters. The defaults follow the
4-chars-per-token approximation: a 512-token window (2048 chars) with a
50-token overlap (200 chars).

Chunks are never stripped or normalised, so the original text can always be
rebuilt from its chunks with :func:`reassemble`.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

DEFAULT_MAX_CHUNK_CHARS = 512 * 4
DEFAULT_OVERLAP_CHARS = 50 * 4


@dataclass(frozen=True)
class Chunk:
    """A contiguous slice of one record's searchable text.

    Attributes:
        source_object_type: Domain tag of the record the chunk came from.
        source_object_id: ID of the record the chunk came from.
        text: The chunk text, verbatim.
        chunk_index: 0-based position of the chunk within the record.
        overlap_chars: Number of leading characters shared with the previous
            chunk (0 for the first chunk).
    """

    source_object_type: str
    source_object_id: str
    text: str
    chunk_index: int
    overlap_chars: int = 0


def _validate(max_chunk_chars: int, overlap_chars: int) -> None:
    if max_chunk_chars < 1:
        raise ValueError(f"max_chunk_chars must be >= 1, got {max_chunk_chars}")
    if not 0 <= overlap_chars < max_chunk_chars:
        raise ValueError(
            f"overlap_chars must be in [0, {max_chunk_chars}), got {overlap_chars}"
        )


def _windows(text: str, max_chunk_chars: int, overlap_chars: int) -> list[tuple[int, int]]:
    """Return ``(start, end)`` offsets of each window over *text*."""
    if not text:
        return []
    step = max(1, max_chunk_chars - overlap_chars)
    length = len(text)

    spans: list[tuple[int, int]] = []
    pos = 0
    while pos < length:
        end = min(pos + max_chunk_chars, length)
        spans.append((pos, end))
        if end >= length:
            break
        pos += step
    return spans


def chunk_text(
    text: str,
    max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS,
    overlap_chars: int = DEFAULT_OVERLAP_CHARS,
) -> list[str]:
    """Split *text* into overlapping windows of at most *max_chunk_chars*.

    Returns ``[]`` for empty text and ``[text]`` when the text fits in one
    window.

    Raises:
        ValueError: If the window or overlap size is out of range.
    """
    _validate(max_chunk_chars, overlap_chars)
    return [text[start:end] for start, end in _windows(text, max_chunk_chars, overlap_chars)]


class ChunkProcessor:
    """Split a record's searchable text into :class:`Chunk` objects."""

    def __init__(
        self,
        max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS,
        overlap_chars: int = DEFAULT_OVERLAP_CHARS,
    ) -> None:
        _validate(max_chunk_chars, overlap_chars)
        self.max_chunk_chars = max_chunk_chars
        self.overlap_chars = overlap_chars

    def chunk(self, object_type: str, object_id: str, text: str) -> list[Chunk]:
        """Return the ordered chunks of *text* with sequential ``chunk_index``."""
        chunks: list[Chunk] = []
        prev_end = 0
        for i, (start, end) in enumerate(
            _windows(text, self.max_chunk_chars, self.overlap_chars)
        ):
            chunks.append(
                Chunk(
                    source_object_type=object_type,
                    source_object_id=object_id,
                    text=text[start:end],
                    chunk_index=i,
                    overlap_chars=prev_end - start if i else 0,
                )
            )
            prev_end = end
        return chunks


def reassemble(chunks: Sequence[Chunk]) -> str:
    """Rebuild the original text from *chunks* (inverse of ``ChunkProcessor.chunk``)."""
    if not chunks:
        return ""
    ordered = sorted(chunks, key=lambda c: c.chunk_index)
    parts = [ordered[0].text]
    parts.extend(c.text[c.overlap_chars:] for c in ordered[1:])
    return "".join(parts)
