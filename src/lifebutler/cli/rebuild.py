"""lifebutler rebuild / index: write embeddings for your records."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from lifebutler.cli.common import DEFAULT_DB, DEFAULT_RECORDS, console, load_cli_config, open_assistant
from lifebutler.cli.errors import (
    err_dimension_mismatch,
    err_record_not_found,
    warn_degraded,
    warn_rebuild_running,
)
from lifebutler.errors import DimensionMismatchError
from lifebutler.records import JsonRecordSource


def rebuild_cmd(
    records: Annotated[
        Path,
        typer.Option("--records", help="JSON file with your life records."),
    ] = DEFAULT_RECORDS,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the embedding database (created if missing)."),
    ] = DEFAULT_DB,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
) -> None:
    """Re-index every record (required after switching embedding models)."""
    cfg = load_cli_config(verbose)
    with open_assistant(cfg, db, records) as assistant:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as prog:
            task = prog.add_task("Embedding records…", total=None)

            def _on_progress(current: int, total: int) -> None:
                prog.update(task, completed=current, total=total)

            report = assistant.rebuild_index(on_progress=_on_progress)

    if not report.started:
        console.print(warn_rebuild_running())
        return

    if report.total == 0:
        console.print(f"[yellow]No records found in '{records}'.[/] Nothing to index.")
        return

    console.print(f"[green]✓[/] {report.indexed}/{report.total} records indexed")
    if report.wiped:
        console.print("  [yellow]↻ Embedding model changed: the index was rebuilt from scratch[/]")
    if report.pruned:
        console.print(f"  [dim]{report.pruned} deleted record(s) removed from the index[/]")
    if report.failed:
        console.print(f"  [red]✗ {report.failed} record(s) failed[/] (see log output)")
    if report.degraded:
        console.print(warn_degraded(report.degraded))


def index_cmd(
    record_id: Annotated[str, typer.Argument(help="Id of the record to (re)index.")],
    records: Annotated[
        Path,
        typer.Option("--records", help="JSON file with your life records."),
    ] = DEFAULT_RECORDS,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the embedding database (created if missing)."),
    ] = DEFAULT_DB,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
) -> None:
    """Index or refresh a single record."""
    cfg = load_cli_config(verbose)
    with open_assistant(cfg, db, records) as assistant:
        source = assistant.pipeline.retriever
        record = source.find(record_id) if isinstance(source, JsonRecordSource) else None
        if record is None:
            console.print(err_record_not_found(record_id, str(records)))
            raise typer.Exit(1)
        try:
            stored = assistant.index_record(record)
        except DimensionMismatchError as exc:
            console.print(err_dimension_mismatch(exc))
            raise typer.Exit(1)

    if stored == 0:
        console.print(f"[yellow]Record '{record_id}' has no searchable text; removed from the index.[/]")
    else:
        console.print(f"[green]✓[/] {record.object_type}({record.id}): {stored} chunk(s) stored")
