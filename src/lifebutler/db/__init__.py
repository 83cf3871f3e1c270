"""lifebutler database layer."""

from lifebutler.db.connection import Database
from lifebutler.db.migrations import MIGRATIONS, run_migrations
from lifebutler.db.models import Embedding
from lifebutler.db.schema import initialize
from lifebutler.db.store import EmbeddingStore
from lifebutler.db.vectors import deserialize_vector, serialize_vector

__all__ = [
    "Database",
    "Embedding",
    "EmbeddingStore",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "serialize_vector",
    "deserialize_vector",
]
