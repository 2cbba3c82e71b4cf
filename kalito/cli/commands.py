"""CLI commands for kalito."""

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from kalito import __logo__, __version__

app = typer.Typer(
    name="kalito",
    help=f"{__logo__} kalito - Conversation memory for chat agents",
    no_args_is_help=True,
)

console = Console()

_state: dict[str, object] = {"config_path": None, "verbose": False}


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} kalito v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-V", callback=version_callback, is_eager=True
    ),
    config: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """kalito - Conversation memory for chat agents."""
    _state["config_path"] = config
    _state["verbose"] = verbose


def _load_manager():
    from kalito.config.loader import load_config
    from kalito.memory.manager import MemoryManager
    from kalito.utils.logging import setup_logging

    config = load_config(_state["config_path"])
    setup_logging(config.logging, verbose=bool(_state["verbose"]))
    return MemoryManager.from_config(config)


# ============================================================================
# Memory Commands
# ============================================================================


@app.command()
def context(
    session_id: str = typer.Argument(..., help="Session id"),
    budget: int = typer.Option(None, "--budget", "-b", help="Token budget"),
    raw: bool = typer.Option(False, "--raw", help="Print the rendered prompt block only"),
):
    """Show the memory context the next turn would receive."""
    manager = _load_manager()
    ctx = manager.build_context(session_id, token_budget=budget)

    if raw:
        console.print(ctx.render(), markup=False)
        return

    if ctx.is_degraded:
        console.print("[yellow]Degraded context (store unavailable)[/yellow]")

    table = Table(title=f"Context for {session_id}")
    table.add_column("Kind", style="cyan")
    table.add_column("Score")
    table.add_column("Text")
    for pin in ctx.semantic_pins:
        table.add_row("pin", f"{pin.importance_score:.2f}", pin.content)
    for summary in ctx.summaries:
        table.add_row("summary", f"{summary.importance_score:.2f}", summary.summary_text)
    for message in ctx.recent_messages:
        table.add_row(message.role, f"{message.importance_score:.2f}", message.text)

    console.print(table)
    console.print(f"[dim]~{ctx.total_tokens} tokens[/dim]")


@app.command()
def stats(session_id: str = typer.Argument(..., help="Session id")):
    """Show memory statistics for a session."""
    manager = _load_manager()
    result = manager.get_stats(session_id)

    table = Table(title=f"Memory stats for {session_id}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("Messages", str(result.total_messages))
    table.add_row("Summaries", str(result.total_summaries))
    table.add_row("Pins", str(result.total_pins))
    table.add_row("Oldest message", result.oldest_message or "-")
    table.add_row("Newest message", result.newest_message or "-")
    table.add_row("Average importance", f"{result.average_importance_score:.3f}")
    table.add_row("Needs summarization", "yes" if manager.needs_summarization(session_id) else "no")
    console.print(table)


@app.command()
def summarize(
    session_id: str = typer.Argument(..., help="Session id"),
    force: bool = typer.Option(False, "--force", "-f", help="Summarize pending messages below the threshold"),
):
    """Summarize a session's unsummarized history."""
    from kalito.memory.types import SummaryRequest

    manager = _load_manager()

    if not force:
        summary = asyncio.run(manager.auto_summarize(session_id))
        if summary is None:
            console.print("[dim]Nothing to summarize yet.[/dim]")
            raise typer.Exit()
    else:
        pending = manager.trigger.pending_messages(session_id)
        if not pending:
            console.print("[dim]No unsummarized messages.[/dim]")
            raise typer.Exit()
        request = SummaryRequest(
            session_id=session_id,
            start_message_id=pending[0].id,
            end_message_id=pending[-1].id,
            message_count=len(pending),
        )
        summary = asyncio.run(manager.create_summary(request))

    console.print(
        f"[green]✓[/green] Summary [cyan]{summary.id}[/cyan] "
        f"(messages {summary.start_message_id}-{summary.end_message_id})"
    )
    console.print(summary.summary_text, markup=False)


@app.command()
def pin(
    session_id: str = typer.Argument(..., help="Session id"),
    content: str = typer.Argument(..., help="Fact to pin"),
    importance: float = typer.Option(None, "--importance", "-i", help="Importance 0-1"),
    pin_type: str = typer.Option("manual", "--type", "-t", help="manual, auto, code, concept or system"),
    source: int = typer.Option(None, "--source", help="Source message id"),
):
    """Pin a fact to a session."""
    from pydantic import ValidationError

    manager = _load_manager()
    try:
        created = manager.create_pin({
            "session_id": session_id,
            "content": content,
            "importance_score": importance,
            "pin_type": pin_type,
            "source_message_id": source,
        })
    except ValidationError as e:
        console.print(f"[red]Invalid pin: {e.errors()[0]['msg']}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Pinned [cyan]{created.id}[/cyan] ({created.importance_score:.2f})")


@app.command()
def rescore(
    session_id: str = typer.Argument(..., help="Session id"),
    limit: int = typer.Option(None, "--limit", "-n", help="Maximum messages"),
):
    """Recompute importance scores for a session."""
    manager = _load_manager()
    updated = manager.rescore_session(session_id, limit=limit)
    console.print(f"[green]✓[/green] Re-scored {updated} messages")


@app.command()
def models():
    """List registered models."""
    from kalito.config.loader import load_config
    from kalito.providers.registry import ModelRegistry

    config = load_config(_state["config_path"])
    registry = ModelRegistry(config.models.entries)

    table = Table(title="Models")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Aliases", style="dim")
    for spec in registry.list_models():
        kind = "[green]local[/green]" if spec.is_local else "remote"
        table.add_row(spec.id, spec.name, kind, ", ".join(spec.aliases))
    console.print(table)


@app.command("init-config")
def init_config(
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
):
    """Write a default config file."""
    from kalito.config.loader import get_config_path, save_config
    from kalito.config.schema import Config

    path = _state["config_path"] or get_config_path()
    if path.exists() and not force:
        console.print(f"[yellow]Config exists: {path}[/yellow]")
        console.print("[dim]Use --force to overwrite.[/dim]")
        raise typer.Exit(1)

    save_config(Config(), path)
    console.print(f"[green]✓[/green] Wrote {path}")


if __name__ == "__main__":
    app()
