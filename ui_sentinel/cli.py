"""CLI entry point for ui-sentinel."""

from __future__ import annotations

import json
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

import ui_sentinel
from ui_sentinel.exceptions import SentinelError

app = typer.Typer(
    name="ui-sentinel",
    help="Diagnose and remediate UI test failures.",
    no_args_is_help=True,
)
kb_app = typer.Typer(help="Inspect and manage the knowledge base.", no_args_is_help=True)
unknowns_app = typer.Typer(help="Review unexplained conditions.", no_args_is_help=True)
app.add_typer(kb_app, name="kb")
app.add_typer(unknowns_app, name="unknowns")

console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log tier decisions"),
    debug: bool = typer.Option(False, "--debug", help="Log everything"),
) -> None:
    level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_config():
    from ui_sentinel.core.config import SentinelConfig

    try:
        return SentinelConfig.from_environment()
    except ValueError as e:
        console.print(f"[red]Configuration error: {escape(str(e))}[/]")
        raise typer.Exit(1)


def _knowledge_base():
    from ui_sentinel.data.knowledge import KnowledgeBase

    try:
        return KnowledgeBase(_load_config().knowledge_base_path)
    except SentinelError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        raise typer.Exit(1)


def _recorder():
    from ui_sentinel.data.recorder import UnknownConditionRecorder

    try:
        return UnknownConditionRecorder(_load_config().unknown_log_path)
    except SentinelError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        raise typer.Exit(1)


@app.command()
def analyze(
    event_file: str = typer.Argument(..., help="Path to a ConditionEvent JSON file"),
    remote: Optional[bool] = typer.Option(
        None, "--remote/--no-remote", help="Force the remote tier on or off"
    ),
    model: Optional[str] = typer.Option(
        None, "--model", "-m", help="Model for remote analysis"
    ),
    output_json: bool = typer.Option(
        False, "--json", help="Print the insight as JSON instead of a report"
    ),
) -> None:
    """Run the diagnostic cascade on a captured event (no live driver)."""
    from ui_sentinel.core.context import SentinelContext
    from ui_sentinel.core.models import CascadeState, ConditionEvent
    from ui_sentinel.core.providers import detect_provider, get_provider_class
    from ui_sentinel.core.report import render_result

    config = _load_config()
    if model:
        config.model = model
    if remote is not None:
        config.remote_enabled = remote

    if remote:
        try:
            provider_class = get_provider_class(detect_provider(config.model))
        except ImportError as e:
            console.print(f"[red]Error: {escape(str(e))}[/]")
            raise typer.Exit(1)
        has_key, key_name = provider_class.check_api_key()
        if not has_key:
            console.print(
                f"[red]Error: {key_name} environment variable not set.[/]\n"
                f"Set it with: export {key_name}='your-key-here'",
            )
            raise typer.Exit(1)

    try:
        with open(event_file, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Cannot read event file: {escape(str(e))}[/]")
        raise typer.Exit(1)
    if not isinstance(data, dict):
        console.print(
            f"[red]Event file must contain a JSON object, got {type(data).__name__}[/]"
        )
        raise typer.Exit(1)
    event = ConditionEvent.from_dict(data)

    try:
        context = SentinelContext.create(config)
    except SentinelError as e:
        console.print(f"[red]Startup error: {escape(str(e))}[/]")
        raise typer.Exit(1)

    result = context.orchestrator().run(event)
    if output_json:
        payload = {
            "state": result.state.value,
            "depth": result.depth,
            "insight": result.insight.to_dict(),
        }
        console.print_json(json.dumps(payload))
    else:
        render_result(result, console)

    raise typer.Exit(1 if result.state is CascadeState.ERROR else 0)


@app.command()
def checkers() -> None:
    """List registered checkers in the order they run."""
    from ui_sentinel.checkers.registry import CheckerRegistry

    try:
        registry = CheckerRegistry.default()
    except SentinelError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        raise typer.Exit(1)

    table = Table(title="Checkers")
    table.add_column("Priority", justify="right")
    table.add_column("Id", style="cyan")
    table.add_column("Description")
    for checker in registry.checkers:
        table.add_row(str(checker.priority), checker.id, checker.descriptor.description)
    console.print(table)


# ── Knowledge base ──────────────────────────────────────────────────


@kb_app.command("list")
def kb_list(
    show_all: bool = typer.Option(False, "--all", "-a", help="Include disabled patterns"),
) -> None:
    """List knowledge base patterns."""
    kb = _knowledge_base()
    patterns = kb.patterns() if show_all else kb.enabled_patterns()
    if not patterns:
        console.print("[yellow]No patterns.[/]")
        raise typer.Exit(0)

    table = Table(title=f"Knowledge base ({kb.path})")
    table.add_column("Id", style="cyan")
    table.add_column("Category")
    table.add_column("Signals", justify="right")
    table.add_column("Hits", justify="right")
    table.add_column("Enabled")
    table.add_column("Description")
    for p in sorted(patterns, key=lambda p: p.id):
        table.add_row(
            p.id,
            p.category.value,
            f"{p.min_match_signals}/{p.signal_count()}",
            str(p.hit_count),
            "yes" if p.enabled else "[dim]no[/]",
            escape(p.description),
        )
    console.print(table)


@kb_app.command("show")
def kb_show(pattern_id: str = typer.Argument(..., help="Pattern id")) -> None:
    """Print one pattern as JSON."""
    pattern = _knowledge_base().get(pattern_id)
    if pattern is None:
        console.print(f"[red]Unknown pattern: {pattern_id}[/]")
        raise typer.Exit(1)
    console.print_json(json.dumps(pattern.to_dict()))


@kb_app.command("disable")
def kb_disable(pattern_id: str = typer.Argument(..., help="Pattern id")) -> None:
    """Retire a pattern without deleting it."""
    try:
        _knowledge_base().disable(pattern_id)
    except KeyError:
        console.print(f"[red]Unknown pattern: {pattern_id}[/]")
        raise typer.Exit(1)
    console.print(f"[green]Disabled {pattern_id}[/]")


@kb_app.command("enable")
def kb_enable(pattern_id: str = typer.Argument(..., help="Pattern id")) -> None:
    """Re-enable a disabled pattern."""
    try:
        _knowledge_base().enable(pattern_id)
    except KeyError:
        console.print(f"[red]Unknown pattern: {pattern_id}[/]")
        raise typer.Exit(1)
    console.print(f"[green]Enabled {pattern_id}[/]")


@kb_app.command("import")
def kb_import(
    source: str = typer.Argument(..., help="JSON file with a list of patterns"),
) -> None:
    """Add or replace patterns from a JSON file."""
    from ui_sentinel.data.knowledge import load_patterns

    kb = _knowledge_base()
    try:
        with open(source, encoding="utf-8") as f:
            data = json.load(f)
        entries = data.get("patterns", []) if isinstance(data, dict) else data
        patterns = load_patterns(entries)
    except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        console.print(f"[red]Cannot import {source}: {escape(str(e))}[/]")
        raise typer.Exit(1)
    for pattern in patterns:
        kb.learn(pattern)
    console.print(f"[green]Imported {len(patterns)} pattern(s)[/]")


@kb_app.command("validate")
def kb_validate() -> None:
    """Load the knowledge base and report problems."""
    kb = _knowledge_base()
    weak = [p for p in kb.patterns() if p.signal_count() < p.min_match_signals]
    for p in weak:
        console.print(
            f"[yellow]{p.id}: defines {p.signal_count()} signal(s) but needs "
            f"{p.min_match_signals}; it can never match[/]"
        )
    console.print(f"[green]{len(kb)} pattern(s) loaded[/]")
    raise typer.Exit(1 if weak else 0)


# ── Unknown conditions ──────────────────────────────────────────────


@unknowns_app.command("list")
def unknowns_list(
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by status"),
) -> None:
    """List recorded unknown conditions, most frequent first."""
    from ui_sentinel.data.recorder import RecordStatus

    wanted = None
    if status:
        try:
            wanted = RecordStatus(status.upper())
        except ValueError:
            choices = ", ".join(s.value for s in RecordStatus)
            console.print(f"[red]Unknown status {status!r}. Choose from: {choices}[/]")
            raise typer.Exit(1)

    records = _recorder().records(wanted)
    if not records:
        console.print("[yellow]No unknown conditions recorded.[/]")
        raise typer.Exit(0)

    table = Table(title="Unknown conditions")
    table.add_column("Hash", style="cyan")
    table.add_column("Kind")
    table.add_column("Count", justify="right")
    table.add_column("Status")
    table.add_column("Message")
    for r in sorted(records, key=lambda r: r.occurrence_count, reverse=True):
        message = r.message if len(r.message) <= 80 else r.message[:77] + "..."
        table.add_row(
            r.hash, r.condition_kind, str(r.occurrence_count), r.status.value, escape(message)
        )
    console.print(table)


@unknowns_app.command("review")
def unknowns_review(
    digest: str = typer.Argument(..., help="Record hash"),
    notes: str = typer.Option("", "--notes", "-n", help="Reviewer notes"),
) -> None:
    """Mark a record as reviewed."""
    try:
        _recorder().mark_reviewed(digest, notes)
    except KeyError:
        console.print(f"[red]Unknown record: {digest}[/]")
        raise typer.Exit(1)
    console.print(f"[green]Marked {digest} reviewed[/]")


@unknowns_app.command("ignore")
def unknowns_ignore(
    digest: str = typer.Argument(..., help="Record hash"),
    notes: str = typer.Option("", "--notes", "-n", help="Reason"),
) -> None:
    """Stop counting occurrences of a record."""
    try:
        _recorder().mark_ignored(digest, notes)
    except KeyError:
        console.print(f"[red]Unknown record: {digest}[/]")
        raise typer.Exit(1)
    console.print(f"[green]Ignoring {digest}[/]")


@unknowns_app.command("resolved")
def unknowns_resolved(
    digest: str = typer.Argument(..., help="Record hash"),
    pattern_id: str = typer.Argument(..., help="Id of the pattern that now covers it"),
) -> None:
    """Record that a knowledge pattern now covers this condition."""
    try:
        _recorder().mark_pattern_created(digest, pattern_id)
    except KeyError:
        console.print(f"[red]Unknown record: {digest}[/]")
        raise typer.Exit(1)
    console.print(f"[green]{digest} covered by {pattern_id}[/]")


@app.command()
def version() -> None:
    """Print version."""
    console.print(f"ui-sentinel {ui_sentinel.__version__}")


if __name__ == "__main__":
    app()
