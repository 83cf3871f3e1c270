"""lifebutler init: scaffold a project directory.

Creates:
  .lifebutler.db            empty embedding store with schema
  lifebutler.yaml           project config (commented template)
  ~/.lifebutler/config.yaml global model config (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from lifebutler.cli.common import DEFAULT_DB, console
from lifebutler.config import ensure_global_config
from lifebutler.db.connection import Database
from lifebutler.db.schema import initialize

_PROJECT_TEMPLATE = """\
# lifebutler project configuration. Overrides ~/.lifebutler/config.yaml.
# Environment overrides: LIFEBUTLER_EMBEDDING_MODEL, LIFEBUTLER_GENERATION_MODEL,
# LIFEBUTLER_LOG_LEVEL.

retrieval:
  top_k: 10
  min_similarity: 0.1

advice:
  style: balanced   # conservative | balanced | aggressive | datadriven | concise

# terms: my-terms.yaml   # replacement heuristic term lists
"""


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialise. Defaults to current directory."),
    ] = Path("."),
    global_config: Annotated[
        Path | None,
        typer.Option("--global-config", hidden=True, help="Override global config path (for testing)."),
    ] = None,
) -> None:
    """Create the database, a project config and the global config."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    db_path = project_dir / DEFAULT_DB.name
    with Database(db_path) as conn:
        initialize(conn)
    console.print(f"  [green]✓[/] {db_path.name}")

    project_cfg = project_dir / "lifebutler.yaml"
    if project_cfg.exists():
        console.print(f"  [dim]↷ {project_cfg.name} already exists[/]")
    else:
        project_cfg.write_text(_PROJECT_TEMPLATE, encoding="utf-8")
        console.print(f"  [green]✓[/] {project_cfg.name}")

    global_path = ensure_global_config(global_config)
    console.print(f"  [green]✓[/] {global_path}")

    console.print(
        "\n[bold]Next:[/] export your records to records.json, then run:  lifebutler rebuild"
    )
