"""Tests for the CLI error and warning messages."""

from __future__ import annotations

from lifebutler.cli.errors import (
    err_bad_records,
    err_config,
    err_dimension_mismatch,
    err_no_api_key,
    err_no_records,
    err_record_not_found,
    err_unknown_style,
    warn_degraded,
    warn_rebuild_running,
)
from lifebutler.errors import DimensionMismatchError


def test_every_error_names_a_fix() -> None:
    messages = [
        err_no_records("records.json"),
        err_bad_records("records.json", "bad timestamp"),
        err_config("advice.style must be one of ..."),
        err_no_api_key("openai", "OPENAI_API_KEY"),
        err_record_not_found("f9", "records.json"),
        err_dimension_mismatch(DimensionMismatchError(768, 1024)),
        err_unknown_style("wild", ["balanced", "concise"]),
    ]
    for msg in messages:
        assert msg.startswith("[red]Error:[/]")
        assert "\n  " in msg


def test_no_api_key_names_env_var() -> None:
    msg = err_no_api_key("anthropic", "ANTHROPIC_API_KEY")
    assert "export ANTHROPIC_API_KEY=" in msg
    assert "ollama/" in msg


def test_dimension_mismatch_shows_both_sizes() -> None:
    msg = err_dimension_mismatch(DimensionMismatchError(768, 1024))
    assert "768-d" in msg
    assert "1024-d" in msg
    assert "lifebutler rebuild" in msg


def test_unknown_style_lists_choices() -> None:
    assert "balanced, concise" in err_unknown_style("wild", ["balanced", "concise"])


def test_warnings() -> None:
    assert warn_rebuild_running().startswith("[yellow]")
    assert "lifebutler status" in warn_rebuild_running()
    assert "2 record(s)" in warn_degraded(2)
