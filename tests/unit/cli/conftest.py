"""CLI fixtures: a project directory with records.json and a patched litellm."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

WORDS = ("coffee", "groceries", "sleep")

RECORDS = {
    "finance_records": [
        {
            "id": "f1",
            "timestamp": "2024-03-01T08:30:00",
            "data": {"type": "expense", "amount": 4.5, "category": "coffee", "notes": "morning coffee"},
        },
        {
            "id": "f2",
            "timestamp": "2024-03-02T18:00:00",
            "data": {"type": "expense", "amount": 82.1, "category": "groceries", "notes": "weekly groceries"},
        },
    ],
    "health_metrics": [
        {
            "id": "h1",
            "timestamp": "2024-03-03T07:00:00",
            "data": {"metric_type": "sleep", "value": 6.5, "unit": "hours", "notes": "sleep increased slowly"},
        }
    ],
}


class FakeLiteLLM:
    """Stand-ins for litellm.embedding / litellm.completion.

    Vectors count a few vocabulary words plus a bias; ``extra_dims`` pads
    them, ``embed_error`` makes embedding fail. ``replies`` are returned by
    completion in order, the last one repeating.
    """

    def __init__(self) -> None:
        self.extra_dims = 0
        self.embed_error: Exception | None = None
        self.replies = ["ok"]
        self.completion_calls = 0

    def embedding(self, model, input, num_retries):
        if self.embed_error is not None:
            raise self.embed_error
        response = MagicMock()
        response.data = [
            {"embedding": [float(t.lower().count(w)) for w in WORDS] + [0.05] + [0.0] * self.extra_dims}
            for t in input
        ]
        return response

    def completion(self, model, messages, max_tokens, temperature, num_retries):
        reply = self.replies[min(self.completion_calls, len(self.replies) - 1)]
        self.completion_calls += 1
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.content = reply
        return response


@pytest.fixture
def fake_llm():
    fake = FakeLiteLLM()
    with patch("lifebutler.rag.llm_client.litellm.embedding", side_effect=fake.embedding), patch(
        "lifebutler.rag.llm_client.litellm.completion", side_effect=fake.completion
    ):
        yield fake


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, fake_llm) -> Path:
    """tmp_path as CWD with records.json, no global config and local models."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("lifebutler.config._GLOBAL_CONFIG_PATH", tmp_path / "global" / "config.yaml")
    for var in ("LIFEBUTLER_EMBEDDING_MODEL", "LIFEBUTLER_GENERATION_MODEL", "LIFEBUTLER_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    (tmp_path / "records.json").write_text(json.dumps(RECORDS), encoding="utf-8")
    return tmp_path
