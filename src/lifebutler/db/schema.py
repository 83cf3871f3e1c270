"""Database schema initialization."""

from __future__ import annotations

import sqlite3

from lifebutler.db.migrations import MIGRATIONS, run_migrations

CURRENT_VERSION = MIGRATIONS[-1][0]


def initialize(conn: sqlite3.Connection) -> None:
    """Bring the schema up to CURRENT_VERSION via the migration runner (idempotent)."""
    run_migrations(conn)
