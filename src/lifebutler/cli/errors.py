"""lifebutler rich error messages.

Every error shown to the user names what went wrong and the exact action
that fixes it.

Usage:
    from lifebutler.cli.errors import err_no_records
    console.print(err_no_records(path))
    raise typer.Exit(1)
"""

from __future__ import annotations

from lifebutler.errors import DimensionMismatchError


def err_no_records(path: str) -> str:
    """Records file missing."""
    return (
        f"[red]Error:[/] No records file found at '{path}'.\n"
        "  Export your records to JSON, or pass:  --records PATH"
    )


def err_bad_records(path: str, detail: str) -> str:
    """Records file exists but cannot be parsed."""
    return (
        f"[red]Error:[/] Could not read records from '{path}': {detail}\n"
        "  Each record needs id, object_type (or a domain key), timestamp and data."
    )


def err_config(detail: str) -> str:
    """Invalid lifebutler.yaml or global config."""
    return (
        f"[red]Error:[/] Invalid configuration: {detail}\n"
        "  Fix lifebutler.yaml or ~/.lifebutler/config.yaml and try again."
    )


def err_no_api_key(provider: str, env_var: str) -> str:
    """Hosted provider configured without its API key."""
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=...\n"
        "  Or use a local model, e.g.  LIFEBUTLER_GENERATION_MODEL=ollama/llama3.1"
    )


def err_record_not_found(record_id: str, path: str) -> str:
    """Record id not present in the records file."""
    return (
        f"[red]Error:[/] Record '{record_id}' not found in '{path}'.\n"
        "  Check the id, or run:  lifebutler rebuild  to index everything."
    )


def err_dimension_mismatch(exc: DimensionMismatchError) -> str:
    """Active embedding model produces vectors of a different length."""
    return (
        "[red]Error:[/] Embedding model changed.\n"
        f"  Index holds {exc.expected}-d vectors, the current model produces {exc.actual}-d vectors.\n"
        "  Run:  lifebutler rebuild"
    )


def err_unknown_style(style: str, styles: list[str]) -> str:
    return (
        f"[red]Error:[/] Unknown advice style '{style}'.\n"
        f"  Choose one of: {', '.join(styles)}"
    )


def warn_rebuild_running() -> str:
    """A rebuild was requested while another one is running."""
    return (
        "[yellow]⚠[/] A rebuild is already running; this request was merged into it.\n"
        "  Run:  lifebutler status  to follow its progress."
    )


def warn_degraded(count: int) -> str:
    """Some records were stored with zero-vector fallbacks."""
    return (
        f"[yellow]⚠[/] {count} record(s) were stored without real embeddings "
        "(embedding service unavailable) and are excluded from search.\n"
        "  Start the embedding model and run:  lifebutler rebuild"
    )
