"""Exception taxonomy for the retrieval-and-routing core.

Only contract violations propagate to callers. Backend failures are caught at
the component boundary and turned into degraded results; these classes exist
so the boundary can tell the cases apart and log them.
"""

from __future__ import annotations


class LifeButlerError(Exception):
    """Base class for all lifebutler errors."""


class DimensionMismatchError(LifeButlerError):
    """A vector's length differs from the vectors already in the store.

    Usually means the embedding model changed. Recover with a full rebuild
    (wipe + re-index); vectors are never truncated or padded.
    """

    def __init__(self, expected: int, actual: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch: store holds {expected}-d vectors, "
            f"got a {actual}-d vector. Run a full rebuild after switching models."
        )


class ServiceUnavailableError(LifeButlerError):
    """The embedding or chat backend could not be reached or returned an error."""


class MalformedClassificationError(LifeButlerError):
    """The model classification stage returned a label that could not be parsed."""

    def __init__(self, raw: str) -> None:
        self.raw = raw
        super().__init__(f"Unparseable classification answer: {raw[:80]!r}")
