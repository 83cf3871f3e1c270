"""Vector <-> BLOB codec for the embeddings table.

Vectors are stored in sqlite-vec's compact float32 format, so the column can
also be passed to sqlite-vec SQL functions (``vec_length``, ``vec_distance_cosine``).
"""

from __future__ import annotations

import struct
from collections.abc import Sequence

import sqlite_vec

_FLOAT32_SIZE = 4


def serialize_vector(vector: Sequence[float]) -> bytes:
    """Pack *vector* as a float32 BLOB."""
    return sqlite_vec.serialize_float32(list(vector))


def deserialize_vector(blob: bytes) -> list[float]:
    """Unpack a float32 BLOB written by serialize_vector().

    Raises:
        ValueError: If the BLOB length is not a multiple of 4 bytes.
    """
    if len(blob) % _FLOAT32_SIZE:
        raise ValueError(f"Corrupt vector BLOB: {len(blob)} bytes is not a multiple of 4")
    return list(struct.unpack(f"{len(blob) // _FLOAT32_SIZE}f", blob))
