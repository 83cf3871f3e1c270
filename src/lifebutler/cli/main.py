"""lifebutler CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from lifebutler.cli.ask import ask_cmd
from lifebutler.cli.init import init_cmd
from lifebutler.cli.rebuild import index_cmd, rebuild_cmd
from lifebutler.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("lifebutler")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"lifebutler {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="lifebutler",
    help=(
        "LifeButler: ask questions about your own records, offline.\n\n"
        "  lifebutler rebuild  Index every record.\n"
        "  lifebutler ask      Search, summarise or get advice from your data."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """LifeButler: offline personal-data assistant."""


app.command("init")(init_cmd)
app.command("ask")(ask_cmd)
app.command("rebuild")(rebuild_cmd)
app.command("index")(index_cmd)
app.command("status")(status_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed LifeButler version."""
    typer.echo(f"lifebutler {_installed_version()}")


if __name__ == "__main__":
    app()
