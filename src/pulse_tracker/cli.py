#!/usr/bin/env python3
"""Pulse Tracker CLI.

Usage:
    pulse-tracker serve --port 3000
    pulse-tracker status
    pulse-tracker history --limit 7
    pulse-tracker merge
"""

import logging

import click
from rich.console import Console
from rich.table import Table

from .activities import ActivityKind
from .config import get_settings
from .daily_log import DailyLog, today_key
from .errors import PulseError
from .remote import MergeSourceClient
from .schema import PersistedState
from .storage import build_store
from .tracker import format_hours

console = Console()


def _load(store) -> PersistedState:
    state = store.load()
    if state is None:
        console.print("[yellow]No saved data yet, showing defaults[/yellow]")
        return PersistedState()
    return state


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, verbose):
    """Pulse Tracker - activity timers, rep counts and a daily log."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        settings = get_settings()
    except ValueError as e:
        raise click.ClickException(str(e))
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    if verbose:
        click.echo(f"Storage: {settings.storage}")


@cli.command()
@click.option("--host", default=None, help="Bind address (default: PULSE_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: PULSE_PORT)")
@click.pass_context
def serve(ctx, host, port):
    """Run the HTTP server."""
    import uvicorn

    from .server import create_app

    settings = ctx.obj["settings"]
    uvicorn.run(create_app(settings), host=host or settings.host, port=port or settings.port)


@cli.command()
@click.pass_context
def status(ctx):
    """Show totals and today's counts."""
    settings = ctx.obj["settings"]
    try:
        state = _load(build_store(settings))
    except PulseError as e:
        raise click.ClickException(str(e))

    today = state.daily_logs.get(today_key(), {})
    table = Table(title=f"Pulse ({settings.storage})", show_header=True, header_style="bold")
    table.add_column("Activity", style="white")
    table.add_column("Today", justify="right")
    table.add_column("Total", justify="right", style="cyan")
    table.add_column("Timer", justify="center")

    for name, cfg in state.activities.items():
        total = state.stats.get(name, 0)
        value = today.get(name, 0)
        if cfg.kind == ActivityKind.TIMED:
            record = state.timers.get(name)
            running = "[green]running[/green]" if record and record.running else "-"
            table.add_row(cfg.label, format_hours(value), format_hours(total), running)
        else:
            table.add_row(cfg.label, f"{value:,}", f"{total:,}", "")
    console.print(table)

    reminder = state.reminder
    state_text = "on" if reminder.active else "off"
    console.print(f"Reminder: every {reminder.period_seconds // 60} min ({state_text})")


@cli.command()
@click.option("--limit", "-n", type=int, default=10, show_default=True, help="Number of active days")
@click.pass_context
def history(ctx, limit):
    """List the most recent days with activity."""
    try:
        state = _load(build_store(ctx.obj["settings"]))
    except PulseError as e:
        raise click.ClickException(str(e))

    table = Table(show_header=True, header_style="bold")
    table.add_column("Date")
    table.add_column("Activity")
    table.add_column("Value", justify="right")
    rows = 0
    for day, name, value in DailyLog(state).history(limit):
        cfg = state.activities.get(name)
        shown = format_hours(value) if cfg and cfg.kind == ActivityKind.TIMED else f"{value:,}"
        table.add_row(day, state.label(name), shown)
        rows += 1
    if not rows:
        table.add_row("[dim]-[/dim]", "[dim]No activity logged[/dim]", "-")
    console.print(table)


@cli.command()
@click.pass_context
def merge(ctx):
    """Merge the external rep counter into the stored daily log."""
    settings = ctx.obj["settings"]
    if not settings.merge_url:
        raise click.ClickException("Merge source not configured (set PULSE_MERGE_URL)")

    store = build_store(settings)
    client = MergeSourceClient(settings.merge_url, settings.merge_token, timeout=settings.http_timeout)
    try:
        state = _load(store)
        counts = client.fetch()
        merged = DailyLog(state).merge_external(settings.merge_activity, counts)
        store.save(state)
    except PulseError as e:
        raise click.ClickException(str(e))
    click.echo(f"Merged {merged} updates into {settings.merge_activity} "
               f"(total {state.stats.get(settings.merge_activity, 0):,})")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
