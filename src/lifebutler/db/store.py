"""Embedding store: the single local table of chunk vectors.

Every vector in the store has the same length. A write whose length differs
raises DimensionMismatchError and writes nothing; the fix is a full rebuild
(``delete_all()`` then re-index), never truncation or padding.
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Sequence
from datetime import datetime, timezone

from lifebutler.db.models import Embedding
from lifebutler.db.vectors import deserialize_vector, serialize_vector
from lifebutler.errors import DimensionMismatchError

_COLUMNS = (
    "id, object_type, object_id, chunk_index, chunk_text, vector, "
    "created_at, degraded, model"
)


class EmbeddingStore:
    """Data access layer for the ``embeddings`` table.

    Wraps an open sqlite3.Connection (schema initialised, see
    lifebutler.db.schema.initialize). All methods take a re-entrant lock so
    a background rebuild and query-time reads can share the connection.
    The connection is owned by the caller and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(self, embedding: Embedding) -> int:
        """Insert one embedding and return its row id.

        An existing row for the same (object_type, object_id, chunk_index)
        is replaced.

        Raises:
            DimensionMismatchError: If the vector length differs from the
                vectors already stored.
        """
        with self._lock, self._conn:
            self._check_dimension([embedding])
            return self._insert(embedding)

    def replace_object(
        self, object_type: str, object_id: str, embeddings: Sequence[Embedding]
    ) -> int:
        """Atomically replace every embedding of one object.

        Prior rows are deleted and *embeddings* inserted in a single
        transaction: readers see either the old chunk set or the new one.
        An empty *embeddings* just removes the object.

        Returns:
            Number of rows inserted.

        Raises:
            DimensionMismatchError: If any vector length differs from the
                other objects' vectors, or from the rest of *embeddings*.
            ValueError: If an embedding belongs to a different object.
        """
        for e in embeddings:
            if (e.object_type, e.object_id) != (object_type, object_id):
                raise ValueError(
                    f"Embedding for {e.object_type}({e.object_id}) passed to "
                    f"replace_object({object_type}, {object_id})"
                )
        with self._lock, self._conn:
            self._check_dimension(embeddings, exclude=(object_type, object_id))
            self._conn.execute(
                "DELETE FROM embeddings WHERE object_type = ? AND object_id = ?",
                (object_type, object_id),
            )
            for e in embeddings:
                self._insert(e)
        return len(embeddings)

    def delete_object(self, object_type: str, object_id: str) -> int:
        """Delete all embeddings of one object. Returns the number of rows removed."""
        with self._lock, self._conn:
            cur = self._conn.execute(
                "DELETE FROM embeddings WHERE object_type = ? AND object_id = ?",
                (object_type, object_id),
            )
            return cur.rowcount

    def delete_all(self) -> int:
        """Wipe the store. Returns the number of rows removed."""
        with self._lock, self._conn:
            cur = self._conn.execute("DELETE FROM embeddings")
            return cur.rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_all(self, object_type: str | None = None) -> list[Embedding]:
        """Return all embeddings, optionally restricted to one object type.

        Rows come back in insertion order.
        """
        with self._lock:
            if object_type is None:
                rows = self._conn.execute(
                    f"SELECT {_COLUMNS} FROM embeddings ORDER BY id"
                ).fetchall()
            else:
                rows = self._conn.execute(
                    f"SELECT {_COLUMNS} FROM embeddings WHERE object_type = ? ORDER BY id",
                    (object_type,),
                ).fetchall()
        return [_row_to_embedding(r) for r in rows]

    def get_object(self, object_type: str, object_id: str) -> list[Embedding]:
        """Return the embeddings of one object ordered by chunk_index."""
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_COLUMNS} FROM embeddings "
                "WHERE object_type = ? AND object_id = ? ORDER BY chunk_index",
                (object_type, object_id),
            ).fetchall()
        return [_row_to_embedding(r) for r in rows]

    def count_by_type(self) -> dict[str, int]:
        """Return the number of embedding rows per object type."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT object_type, COUNT(*) FROM embeddings GROUP BY object_type"
            ).fetchall()
        return {r[0]: r[1] for r in rows}

    def count_objects_by_type(self) -> dict[str, int]:
        """Return the number of distinct indexed objects per object type."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT object_type, COUNT(DISTINCT object_id) FROM embeddings "
                "GROUP BY object_type"
            ).fetchall()
        return {r[0]: r[1] for r in rows}

    def object_ids(self, object_type: str) -> set[str]:
        """Return the IDs of all indexed objects of *object_type*."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT DISTINCT object_id FROM embeddings WHERE object_type = ?",
                (object_type,),
            ).fetchall()
        return {r[0] for r in rows}

    def dimension(self) -> int | None:
        """Return the vector length shared by the store, or None if empty."""
        with self._lock:
            row = self._conn.execute("SELECT dimensions FROM embeddings LIMIT 1").fetchone()
        return row[0] if row else None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_dimension(
        self,
        embeddings: Sequence[Embedding],
        exclude: tuple[str, str] | None = None,
    ) -> None:
        if not embeddings:
            return
        if exclude is None:
            row = self._conn.execute("SELECT dimensions FROM embeddings LIMIT 1").fetchone()
        else:
            row = self._conn.execute(
                "SELECT dimensions FROM embeddings "
                "WHERE NOT (object_type = ? AND object_id = ?) LIMIT 1",
                exclude,
            ).fetchone()
        expected = row[0] if row else embeddings[0].dimensions
        for e in embeddings:
            if e.dimensions != expected:
                raise DimensionMismatchError(expected, e.dimensions)
        if expected < 1:
            raise ValueError("Cannot store an empty vector")

    def _insert(self, e: Embedding) -> int:
        created_at = e.created_at or datetime.now(timezone.utc).isoformat()
        cur = self._conn.execute(
            """
            INSERT OR REPLACE INTO embeddings
                (object_type, object_id, chunk_index, chunk_text, vector,
                 dimensions, created_at, degraded, model)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                e.object_type,
                e.object_id,
                e.chunk_index,
                e.chunk_text,
                serialize_vector(e.vector),
                e.dimensions,
                created_at,
                int(e.degraded),
                e.model,
            ),
        )
        return cur.lastrowid


def _row_to_embedding(row: sqlite3.Row) -> Embedding:
    return Embedding(
        id=row["id"],
        object_type=row["object_type"],
        object_id=row["object_id"],
        chunk_index=row["chunk_index"],
        chunk_text=row["chunk_text"],
        vector=deserialize_vector(row["vector"]),
        created_at=row["created_at"],
        degraded=bool(row["degraded"]),
        model=row["model"],
    )
