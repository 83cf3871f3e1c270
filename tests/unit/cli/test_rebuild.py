"""Tests for lifebutler rebuild and lifebutler index."""

from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from lifebutler.cli.main import app

runner = CliRunner()


# ---------------------------------------------------------------------------
# rebuild
# ---------------------------------------------------------------------------


def test_rebuild_indexes_all_records(project: Path) -> None:
    result = runner.invoke(app, ["rebuild"])
    assert result.exit_code == 0, result.output
    assert "3/3 records indexed" in result.output
    assert (project / ".lifebutler.db").exists()


def test_rebuild_custom_db_path(project: Path) -> None:
    result = runner.invoke(app, ["rebuild", "--db", "data/index.db"])
    assert result.exit_code == 0, result.output
    assert (project / "data" / "index.db").exists()


def test_rebuild_twice_is_stable(project: Path) -> None:
    runner.invoke(app, ["rebuild"])
    result = runner.invoke(app, ["rebuild"])
    assert result.exit_code == 0, result.output
    assert "3/3 records indexed" in result.output
    assert "Embedding model changed" not in result.output


def test_rebuild_after_model_change_wipes(project: Path, fake_llm) -> None:
    runner.invoke(app, ["rebuild"])
    fake_llm.extra_dims = 2

    result = runner.invoke(app, ["rebuild"])
    assert result.exit_code == 0, result.output
    assert "3/3 records indexed" in result.output
    assert "Embedding model changed" in result.output


def test_rebuild_prunes_deleted_records(project: Path) -> None:
    runner.invoke(app, ["rebuild"])
    records = json.loads((project / "records.json").read_text(encoding="utf-8"))
    records["finance_records"] = records["finance_records"][:1]
    (project / "records.json").write_text(json.dumps(records), encoding="utf-8")

    result = runner.invoke(app, ["rebuild"])
    assert result.exit_code == 0, result.output
    assert "2/2 records indexed" in result.output
    assert "1 deleted record(s) removed" in result.output


def test_rebuild_with_embeddings_offline_degrades(project: Path, fake_llm) -> None:
    fake_llm.embed_error = RuntimeError("connection refused")
    result = runner.invoke(app, ["rebuild"])
    assert result.exit_code == 0, result.output
    assert "3/3 records indexed" in result.output
    assert "3 record(s) were stored" in result.output


def test_rebuild_empty_records(project: Path) -> None:
    (project / "records.json").write_text("[]", encoding="utf-8")
    result = runner.invoke(app, ["rebuild"])
    assert result.exit_code == 0, result.output
    assert "Nothing to index" in result.output


def test_rebuild_missing_records(project: Path) -> None:
    (project / "records.json").unlink()
    result = runner.invoke(app, ["rebuild"])
    assert result.exit_code == 1
    assert "No records file" in result.output


def test_rebuild_malformed_records(project: Path) -> None:
    (project / "records.json").write_text('[{"id": "x"}]', encoding="utf-8")
    result = runner.invoke(app, ["rebuild"])
    assert result.exit_code == 1
    assert "Could not read records" in result.output


# ---------------------------------------------------------------------------
# index
# ---------------------------------------------------------------------------


def test_index_single_record(project: Path) -> None:
    result = runner.invoke(app, ["index", "f1"])
    assert result.exit_code == 0, result.output
    assert "finance_records(f1): 1 chunk(s) stored" in result.output


def test_index_unknown_record(project: Path) -> None:
    result = runner.invoke(app, ["index", "nope"])
    assert result.exit_code == 1
    assert "Record 'nope' not found" in result.output


def test_index_after_model_change_reports_mismatch(project: Path, fake_llm) -> None:
    runner.invoke(app, ["rebuild"])
    fake_llm.extra_dims = 2

    result = runner.invoke(app, ["index", "f1"])
    assert result.exit_code == 1
    assert "Embedding model changed" in result.output
    assert "lifebutler rebuild" in result.output
