"""Domain models for the lifebutler database layer."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Embedding:
    object_type: str
    object_id: str
    chunk_text: str
    vector: list[float]
    chunk_index: int = 0
    created_at: str | None = None  # ISO 8601; defaults to insert time
    degraded: bool = False  # True for a zero-vector fallback
    model: str = ""
    id: int | None = field(default=None, compare=False)  # set after insert

    @property
    def dimensions(self) -> int:
        return len(self.vector)
