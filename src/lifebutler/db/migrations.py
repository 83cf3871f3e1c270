"""Forward-only migration runner for the embedding store schema."""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

# One row per chunk. created_at is the source record's timestamp (ISO 8601),
# used to break similarity ties in favour of recent records and to restrict
# searches to a time range. degraded marks zero-vector fallbacks, which search
# skips.
_V1_SQL = """
CREATE TABLE IF NOT EXISTS embeddings (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    object_type     TEXT NOT NULL,
    object_id       TEXT NOT NULL,
    chunk_index     INTEGER NOT NULL DEFAULT 0,
    chunk_text      TEXT NOT NULL,
    vector          BLOB NOT NULL,
    dimensions      INTEGER NOT NULL,
    created_at      TEXT NOT NULL,
    degraded        INTEGER NOT NULL DEFAULT 0,
    model           TEXT NOT NULL DEFAULT '',
    UNIQUE (object_type, object_id, chunk_index)
);

CREATE INDEX IF NOT EXISTS idx_embeddings_object ON embeddings (object_type, object_id);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied migration version (0 for a fresh database)."""
    conn.execute(_CREATE_SCHEMA_VERSION)
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] if row[0] is not None else 0


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    current = current_version(conn)
    conn.commit()

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
