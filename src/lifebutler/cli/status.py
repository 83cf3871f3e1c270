"""lifebutler status: index coverage per domain."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from lifebutler.cli.common import DEFAULT_DB, DEFAULT_RECORDS, console, load_cli_config, open_assistant
from lifebutler.rag.pipeline import IndexingStatus


def status_cmd(
    records: Annotated[
        Path,
        typer.Option("--records", help="JSON file with your life records."),
    ] = DEFAULT_RECORDS,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the embedding database."),
    ] = DEFAULT_DB,
) -> None:
    """Show how much of each domain is indexed."""
    cfg = load_cli_config()
    with open_assistant(cfg, db, records) as assistant:
        status = assistant.get_indexing_status()

    console.print(
        Panel(
            f"Database:  {db}\n"
            f"Records:   {records}\n"
            f"Embedding: {cfg.embedding.model}",
            title="[bold]LifeButler[/]",
            expand=False,
        )
    )
    console.print(_coverage_table(status))

    if status.is_rebuilding:
        console.print("[yellow]↻ A rebuild is in progress.[/]")
    elif status.overall_coverage < 1.0:
        console.print("[yellow]Some records are not indexed.[/]  Run:  lifebutler rebuild")


def _coverage_table(status: IndexingStatus) -> Table:
    table = Table(title="Index coverage")
    table.add_column("Domain")
    table.add_column("Indexed", justify="right")
    table.add_column("Records", justify="right")
    table.add_column("Coverage", justify="right")
    for domain, cov in status.domains.items():
        pct = cov.coverage * 100
        colour = "green" if pct >= 100 else "yellow" if pct > 0 else "red"
        if cov.total == 0:
            colour = "dim"
        table.add_row(domain, str(cov.indexed), str(cov.total), f"[{colour}]{pct:.0f}%[/]")
    table.add_section()
    table.add_row(
        "[bold]total[/]",
        str(status.indexed_records),
        str(status.total_records),
        f"[bold]{status.overall_coverage * 100:.0f}%[/]",
    )
    table.caption = f"{status.total_embeddings:,} embeddings stored"
    return table
