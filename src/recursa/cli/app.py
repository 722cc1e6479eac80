# src/recursa/cli/app.py
"""Command-line interface for Recursa.

This module provides a thin Typer wrapper around recursa.config and
AgenticRAG. Each command:
1. Parses args (via Typer)
2. Builds the pipeline or store from configuration
3. Runs it
4. Renders results with Rich
"""

from __future__ import annotations

import contextlib
import logging
from typing import NoReturn

try:
    import typer
    from rich.console import Console
    from rich.logging import RichHandler
    from rich.markdown import Markdown
    from rich.panel import Panel
    from rich.table import Table
except ImportError as e:
    raise SystemExit(
        "CLI requires additional dependencies.\nInstall with: pip install recursa-rag[cli]"
    ) from e

from recursa import __version__
from recursa.config import (
    DEFAULT_DATA_DIR,
    build_settings,
    create_pipeline,
    get_recursa_config,
    get_run_store,
    load_config,
    load_env_file,
)
from recursa.exceptions import ConfigurationError, RecursaError
from recursa.loaders import LoaderRegistry
from recursa.models import Answer, RunResult, VerificationStatus
from recursa.scratchpad import decompress_note
from recursa.settings import RunOptions
from recursa.stores import RunStore

app = typer.Typer(
    name="recursa",
    help="Recursa - recursive drill-down question answering over documents.",
    no_args_is_help=True,
)
runs_app = typer.Typer(help="Inspect saved runs")
app.add_typer(runs_app, name="runs")
console = Console()
err_console = Console(stderr=True)

STATUS_STYLES = {
    VerificationStatus.VERIFIED: "green",
    VerificationStatus.PARTIAL: "yellow",
    VerificationStatus.UNVERIFIED: "red",
}


def version_callback(value: bool) -> None:
    if value:
        console.print(f"recursa {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Recursa - recursive drill-down question answering."""
    load_env_file()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def _fail(error: Exception) -> NoReturn:
    console.print(f"[red]Error: {error}[/red]")
    suggestion = getattr(error, "suggestion", None)
    if suggestion:
        console.print(f"[dim]{suggestion}[/dim]")
    raise typer.Exit(1)


@app.command()
def ask(
    files: list[str] = typer.Argument(..., help="Documents to answer from (.txt, .md, .pdf)"),
    question: str = typer.Option(..., "--query", "-q", help="Question to answer"),
    config_file: str = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
    ),
    data_dir: str = typer.Option(
        None,
        "--data-dir",
        "-d",
        help="Data directory for saved runs (default: from config)",
    ),
    depth: int = typer.Option(
        None,
        "--depth",
        help="Maximum drill-down depth",
        min=0,
    ),
    no_graph: bool = typer.Option(
        False,
        "--no-graph",
        help="Skip knowledge graph extraction",
    ),
    no_verify: bool = typer.Option(
        False,
        "--no-verify",
        help="Skip fact verification",
    ),
    plain: bool = typer.Option(
        False,
        "--plain",
        help="Plain output (no colors/formatting)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Log pipeline progress at DEBUG level",
    ),
) -> None:
    """Answer a question over one or more documents."""
    _setup_logging(verbose)
    options = RunOptions(
        recursive_depth=depth,
        enable_knowledge_graph=False if no_graph else None,
        enable_fact_verification=False if no_verify else None,
    )
    try:
        documents = LoaderRegistry.default().load_many(files)
        pipeline = create_pipeline(get_recursa_config(data_dir, config_file))
        spinner = (
            contextlib.nullcontext()
            if plain or not console.is_terminal
            else console.status("Drilling down...", spinner="dots")
        )
        with spinner:
            result = pipeline.process(question, documents, options)
    except (RecursaError, FileNotFoundError, ValueError, ImportError) as e:
        _fail(e)

    if plain:
        _render_plain(result)
    else:
        _render_rich(result)


def _render_plain(result: RunResult) -> None:
    answer = result.answer
    console.print(f"Answer: {answer.text}")
    console.print(f"Confidence: {answer.confidence_score:.2f}")
    if answer.sources_used:
        console.print("Sources:")
        chunks = {c.index: c for c in result.context}
        for index in answer.sources_used:
            chunk = chunks.get(index)
            preview = chunk.text[:100].replace("\n", " ") if chunk else ""
            console.print(f"  [{index}] {preview}")
    if result.verification is not None:
        console.print(f"Verification: {result.verification.overall_status.value}")
    _render_metadata_plain(answer)


def _render_metadata_plain(answer: Answer) -> None:
    meta = answer.metadata
    if meta is None:
        return
    console.print(
        f"Run {meta.run_id}: depth {meta.recursion_depth}, "
        f"{meta.chunks_processed} chunks scored, {meta.model_calls} model calls, "
        f"{meta.token_usage.total_tokens} tokens, {meta.processing_time_seconds:.1f}s"
    )
    if meta.degraded_stages:
        console.print(f"Degraded: {', '.join(meta.degraded_stages)}")


def _render_rich(result: RunResult) -> None:
    answer = result.answer
    console.print(
        Panel(
            Markdown(answer.text),
            title="Answer",
            subtitle=f"confidence {answer.confidence_score:.2f}",
            border_style="green" if answer.sources_used else "yellow",
        )
    )

    if answer.sources_used:
        console.print("[bold]Sources:[/bold]")
        chunks = {c.index: c for c in result.context}
        for index in answer.sources_used:
            chunk = chunks.get(index)
            if chunk is None:
                continue
            preview = chunk.text[:100].replace("\n", " ")
            if len(chunk.text) > 100:
                preview += "..."
            console.print(
                f"  [{index}] [dim]chars {chunk.start}-{chunk.end}, depth {chunk.depth}[/dim]"
            )
            console.print(f"      [dim]{preview}[/dim]")

    if not result.knowledge_graph.is_empty():
        table = Table(title=f"Knowledge Graph ({len(result.knowledge_graph.entities)} entities)")
        table.add_column("Entity", style="cyan")
        table.add_column("Type")
        table.add_column("Confidence", justify="right")
        entities = sorted(
            result.knowledge_graph.entities.values(), key=lambda e: e.confidence, reverse=True
        )
        for entity in entities[:10]:
            table.add_row(entity.normalized_name, entity.type, f"{entity.confidence:.2f}")
        console.print(table)

    if result.verification is not None:
        status = result.verification.overall_status
        style = STATUS_STYLES[status]
        console.print(f"[bold]Verification:[/bold] [{style}]{status.value}[/{style}]")
        for claim in result.verification.claims:
            console.print(f"  [dim]{claim.verdict.value:<11}[/dim] {claim.text}")

    meta = answer.metadata
    if meta is not None:
        table = Table(title="Processing")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green", justify="right")
        table.add_row("Run", meta.run_id)
        table.add_row("Terminal reason", meta.terminal_reason.value if meta.terminal_reason else "-")
        table.add_row("Depth", str(meta.recursion_depth))
        table.add_row("Chunks scored", str(meta.chunks_processed))
        table.add_row("Model calls", str(meta.model_calls))
        table.add_row("Tokens", str(meta.token_usage.total_tokens))
        table.add_row("Time", f"{meta.processing_time_seconds:.1f}s")
        if meta.degraded_stages:
            table.add_row("Degraded", ", ".join(meta.degraded_stages), style="yellow")
        console.print(table)


@app.command(name="config")
def config_cmd(
    config_file: str = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
    ),
) -> None:
    """Show the effective settings (defaults, recursa.yaml, RECURSA_* variables)."""
    try:
        settings = build_settings(load_config(config_file))
    except ConfigurationError as e:
        _fail(e)

    table = Table(title="Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for name, value in settings.model_dump().items():
        table.add_row(name, str(value))
    console.print(table)


def _run_store(data_dir: str | None, config_file: str | None) -> RunStore:
    config = load_config(config_file)
    return get_run_store(data_dir or config.get("data_dir") or DEFAULT_DATA_DIR)


@runs_app.command(name="list")
def runs_list(
    data_dir: str = typer.Option(
        None,
        "--data-dir",
        "-d",
        help="Data directory (default: from config)",
    ),
    config_file: str = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
    ),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of runs to show"),
    plain: bool = typer.Option(
        False,
        "--plain",
        help="Plain output (no colors/formatting)",
    ),
) -> None:
    """List saved runs, newest first."""
    try:
        store = _run_store(data_dir, config_file)
    except ConfigurationError as e:
        _fail(e)

    runs = store.list_runs(limit)
    if not runs:
        console.print("No runs saved." if plain else "[dim]No runs saved.[/dim]")
        raise typer.Exit(0)

    if plain:
        for run_id, saved_at in runs:
            console.print(f"{run_id}  {saved_at}")
        return

    table = Table(title=f"Saved Runs ({len(runs)})")
    table.add_column("Run", style="cyan")
    table.add_column("Saved at")
    for run_id, saved_at in runs:
        table.add_row(run_id, saved_at)
    console.print(table)


@runs_app.command(name="show")
def runs_show(
    run_id: str = typer.Argument(..., help="Run ID to show"),
    data_dir: str = typer.Option(
        None,
        "--data-dir",
        "-d",
        help="Data directory (default: from config)",
    ),
    config_file: str = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
    ),
) -> None:
    """Show the answer, graph and notes of a saved run."""
    try:
        store = _run_store(data_dir, config_file)
    except ConfigurationError as e:
        _fail(e)

    record = store.load(run_id)
    if record is None:
        console.print(f"[red]Error: run not found: {run_id}[/red]")
        raise typer.Exit(1)

    console.print(Panel(Markdown(record.answer.text), title=f"Run {record.run_id}"))
    console.print(f"Sources: {record.answer.sources_used or '-'}")
    _render_metadata_plain(record.answer)
    if not record.knowledge_graph.is_empty():
        console.print()
        console.print(record.knowledge_graph.summary())
    for entry in record.scratchpad_entries:
        console.print(f"[dim]note {entry.iteration_id}: {decompress_note(entry)}[/dim]")
