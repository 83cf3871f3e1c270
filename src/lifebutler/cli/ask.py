"""lifebutler ask: route a question and print search results or advice."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from lifebutler.advice.engine import AdviceStyle
from lifebutler.advice.result import AdviceResult
from lifebutler.assistant import RetrievalAnswer
from lifebutler.cli.common import DEFAULT_DB, DEFAULT_RECORDS, console, load_cli_config, open_assistant
from lifebutler.cli.errors import err_unknown_style
from lifebutler.routing.router import RouteDecision

_SNIPPET_CHARS = 120


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question about your records.")],
    style: Annotated[
        str | None,
        typer.Option("--style", help="Advice tone: conservative, balanced, aggressive, datadriven, concise."),
    ] = None,
    records: Annotated[
        Path,
        typer.Option("--records", help="JSON file with your life records."),
    ] = DEFAULT_RECORDS,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to the embedding database (created if missing)."),
    ] = DEFAULT_DB,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the answer as JSON."),
    ] = False,
    show_route: Annotated[
        bool,
        typer.Option("--show-route", help="Show how the question was routed."),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
) -> None:
    """Ask a question about your records."""
    advice_style: AdviceStyle | None = None
    if style is not None:
        try:
            advice_style = AdviceStyle(style.lower())
        except ValueError:
            console.print(err_unknown_style(style, [s.value for s in AdviceStyle]))
            raise typer.Exit(1)

    cfg = load_cli_config(verbose)
    with open_assistant(cfg, db, records) as assistant:
        decision = assistant.route(question)
        if show_route:
            _print_route(decision)
        answer = assistant.answer_decision(decision, advice_style)

    if as_json:
        typer.echo(json.dumps(answer.to_dict(), ensure_ascii=False, indent=2))
        return

    if isinstance(answer, AdviceResult):
        console.print(Markdown(answer.format_response()))
    else:
        _print_retrieval(answer)


def _print_route(decision: RouteDecision) -> None:
    stages = " → ".join(s.value for s in decision.trace)
    fallback = " [yellow](fallback)[/]" if decision.fallback else ""
    console.print(
        f"[dim]Route:[/] {decision.intent.value} / {decision.strategy.value} "
        f"at {decision.stage.value} ({decision.confidence:.2f}){fallback}\n"
        f"[dim]Stages:[/] {stages}"
    )


def _print_retrieval(answer: RetrievalAnswer) -> None:
    for disclaimer in answer.safety.disclaimers:
        console.print(f"[bold yellow]{escape(disclaimer)}[/]")

    if answer.aggregations:
        console.print(
            Panel(
                "\n".join(escape(a.describe()) for a in answer.aggregations),
                title="Calculated from your records",
            )
        )
    if answer.summary:
        console.print(Panel(escape(answer.summary), title="Summary"))

    if answer.results:
        _print_results_table(answer)
    elif not answer.degraded:
        console.print(
            f"[yellow]No matching records for:[/] {escape(answer.query)} ({answer.period})\n"
            "  Run:  lifebutler status  to check the index coverage."
        )

    for notice in answer.notices:
        console.print(f"[yellow]{escape(notice)}[/]")


def _print_results_table(answer: RetrievalAnswer) -> None:
    table = Table(title=f"Results for: {escape(answer.query)}", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Source")
    table.add_column("Relevance", justify="right")
    table.add_column("Text")
    for i, r in enumerate(answer.results, 1):
        snippet = " ".join(r.text.split())
        if len(snippet) > _SNIPPET_CHARS:
            snippet = snippet[: _SNIPPET_CHARS - 1] + "…"
        table.add_row(str(i), r.citation, f"{r.similarity * 100:.1f}%", escape(snippet))
    console.print(table)
