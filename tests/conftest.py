"""Shared pytest fixtures."""

from __future__ import annotations

import threading
from datetime import datetime

import pytest

from lifebutler.db.connection import Database
from lifebutler.db.schema import initialize
from lifebutler.db.store import EmbeddingStore
from lifebutler.errors import ServiceUnavailableError
from lifebutler.records import Record

VOCAB = (
    "coffee",
    "groceries",
    "salary",
    "sleep",
    "jogging",
    "book",
    "flight",
    "meeting",
    "pizza",
    "daily",
    "increased",
    "weight",
)


class KeywordEmbedder:
    """Deterministic embedding backend: one axis per vocabulary word plus a bias.

    ``fail`` makes every call raise; ``extra_dims`` pads vectors to simulate a
    model with a different dimension.
    """

    def __init__(self, vocab=VOCAB) -> None:
        self.vocab = vocab
        self.fail = False
        self.extra_dims = 0
        self.calls: list[list[str]] = []

    @property
    def dimensions(self) -> int:
        return len(self.vocab) + 1 + self.extra_dims

    def embed(self, texts):
        self.calls.append(list(texts))
        if self.fail:
            raise ServiceUnavailableError("embedding service down")
        return [self._vector(t) for t in texts]

    def _vector(self, text: str) -> list[float]:
        lowered = text.lower()
        return [float(lowered.count(w)) for w in self.vocab] + [0.05] + [0.0] * self.extra_dims


class BlockingEmbedder(KeywordEmbedder):
    """KeywordEmbedder that blocks until ``release`` is set; ``started`` is set on first call."""

    def __init__(self) -> None:
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def embed(self, texts):
        self.started.set()
        self.release.wait(timeout=5)
        return super().embed(texts)


class FakeChat:
    """Chat backend returning canned replies (or raising if ``fail``)."""

    def __init__(self, reply: str = "ok") -> None:
        self.reply = reply
        self.fail = False
        self.messages: list[list[dict]] = []

    def chat(self, messages):
        self.messages.append(messages)
        if self.fail:
            raise ServiceUnavailableError("chat service down")
        return self.reply


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".lifebutler.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def store(tmp_db):
    return EmbeddingStore(tmp_db)


@pytest.fixture
def embedder():
    return KeywordEmbedder()


@pytest.fixture
def blocking_embedder():
    emb = BlockingEmbedder()
    yield emb
    emb.release.set()


@pytest.fixture
def chat():
    return FakeChat()


@pytest.fixture
def sample_records() -> list[Record]:
    return [
        Record(
            id="f1",
            object_type="finance_records",
            timestamp=datetime(2024, 3, 1, 8, 30),
            data={"type": "expense", "amount": 4.5, "category": "coffee", "notes": "morning coffee"},
        ),
        Record(
            id="f2",
            object_type="finance_records",
            timestamp=datetime(2024, 3, 2, 18, 0),
            data={"type": "expense", "amount": 82.1, "category": "groceries", "notes": "weekly groceries"},
        ),
        Record(
            id="m1",
            object_type="meals",
            timestamp=datetime(2024, 3, 2, 20, 0),
            data={"name": "Pizza night", "items": ["pizza", "salad"], "calories": 900},
        ),
        Record(
            id="h1",
            object_type="health_metrics",
            timestamp=datetime(2024, 3, 3, 7, 0),
            data={"metric_type": "sleep", "value": 6.5, "unit": "hours", "notes": "sleep increased slowly"},
        ),
    ]
