"""Shared CLI plumbing: config loading, record source and assistant wiring."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from lifebutler.assistant import LifeAssistant
from lifebutler.cli.errors import err_bad_records, err_config, err_no_api_key, err_no_records
from lifebutler.config import ConfigError, LifeButlerConfig, load_config
from lifebutler.log import setup_logging
from lifebutler.rag.llm_client import _PROVIDER_ENV, validate_api_key
from lifebutler.records import JsonRecordSource

console = Console()

DEFAULT_DB = Path(".lifebutler.db")
DEFAULT_RECORDS = Path("records.json")


def load_cli_config(verbose: bool = False) -> LifeButlerConfig:
    """Load config and set up logging, exiting with a readable error on failure."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)
    setup_logging("DEBUG" if verbose else cfg.logging.level)
    return cfg


def open_records(path: Path) -> JsonRecordSource:
    """Open and eagerly validate the records file."""
    if not path.exists():
        console.print(err_no_records(str(path)))
        raise typer.Exit(1)
    source = JsonRecordSource(path)
    try:
        source.load()
    except ValueError as exc:
        console.print(err_bad_records(str(path), str(exc)))
        raise typer.Exit(1)
    return source


def open_assistant(cfg: LifeButlerConfig, db: Path, records: Path) -> LifeAssistant:
    for model in (cfg.embedding.model, cfg.generation.model):
        try:
            validate_api_key(model)
        except EnvironmentError:
            provider = model.split("/")[0].lower() if "/" in model else "openai"
            console.print(err_no_api_key(provider, _PROVIDER_ENV.get(provider) or ""))
            raise typer.Exit(1)
    return LifeAssistant.from_config(cfg, db, open_records(records))
