"""Tests for lifebutler status and version."""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from lifebutler.cli.main import app

runner = CliRunner()


# ---------------------------------------------------------------------------
# lifebutler --version
# ---------------------------------------------------------------------------


def test_version_flag_exits_zero() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "lifebutler" in result.output.lower()


def test_version_command() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "lifebutler" in result.output.lower()


# ---------------------------------------------------------------------------
# lifebutler status
# ---------------------------------------------------------------------------


def test_status_before_rebuild(project: Path) -> None:
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0, result.output
    assert "LifeButler" in result.output
    assert "Index coverage" in result.output
    assert "finance_records" in result.output
    assert "0%" in result.output
    assert "Some records are not indexed" in result.output


def test_status_after_rebuild(project: Path) -> None:
    runner.invoke(app, ["rebuild"])
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0, result.output
    assert "100%" in result.output
    assert "3 embeddings stored" in result.output
    assert "not indexed" not in result.output


def test_status_partial(project: Path) -> None:
    runner.invoke(app, ["index", "h1"])
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0, result.output
    # one of three records
    assert "33%" in result.output


def test_status_missing_records(project: Path) -> None:
    result = runner.invoke(app, ["status", "--records", "elsewhere.json"])
    assert result.exit_code == 1
    assert "No records file" in result.output
