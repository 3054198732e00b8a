"""chatrelay watch command for following a task from another process.

Reads the durable task state once, then polls it until the task is no
longer active. Presents a Rich Live panel, or plain lines with --simple.
"""

import asyncio
from typing import Any, Callable, List, Optional

import click

from chatrelay.cli.logging import cli_command, get_cli_logger
from chatrelay.cli.output import emit_exception
from chatrelay.cli.registry import get_context
from chatrelay.cli.resilience import handle_keyboard_interrupt
from chatrelay.core.errors import StateStoreError
from chatrelay.core.task import TaskObserver, TaskState

logger = get_cli_logger()

_STATUS_COLORS = {
    "idle": "dim",
    "extracting": "cyan",
    "exporting": "cyan",
    "calling_remote": "yellow",
    "completed": "green",
    "failed": "red",
    "cancelled": "magenta",
}

# Log lines shown in the live panel
_PANEL_LOG_LINES = 12


def _build_panel(state: TaskState) -> Any:
    """Build a Rich panel describing ``state``."""
    from rich.panel import Panel
    from rich.table import Table

    status_val = state.status.value
    color = _STATUS_COLORS.get(status_val, "white")

    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold")
    table.add_column(ratio=1)
    table.add_row("Status", f"[{color}]{status_val}[/{color}]")
    table.add_row("Step", state.message or "-")
    if state.filename:
        table.add_row("Export", state.filename)
    if state.summary_filename:
        table.add_row("Summary", state.summary_filename)
    if state.error:
        table.add_row("Error", f"[red]{state.error}[/red]")
    if state.started_at:
        table.add_row("Started", state.started_at.astimezone().strftime("%H:%M:%S"))

    logs = state.logs[-_PANEL_LOG_LINES:]
    table.add_row("Log", "\n".join(logs) if logs else "[dim]no entries[/dim]")

    return Panel(table, title="[bold]chatrelay task[/bold]", border_style=color)


def _run_live(observer: TaskObserver, interval: float) -> TaskState:
    from rich.console import Console
    from rich.live import Live

    console = Console()
    initial = observer.read()
    with Live(_build_panel(initial), console=console, refresh_per_second=4, screen=False) as live:
        return asyncio.run(observer.follow(interval=interval, on_update=lambda s: live.update(_build_panel(s))))


def _simple_printer() -> Callable[[TaskState], None]:
    """Print a status line when the status changes and each new log entry once."""
    seen: List[str] = []
    last_status: Optional[str] = None

    def on_update(state: TaskState) -> None:
        nonlocal seen, last_status
        if state.status.value != last_status:
            last_status = state.status.value
            click.echo(f"status={state.status.value} message={state.message!r}")
        # Logs are a capped window; print entries not seen in the previous window.
        new_entries = [entry for entry in state.logs if entry not in seen]
        for entry in new_entries:
            click.echo(entry)
        seen = list(state.logs)

    return on_update


def _run_simple(observer: TaskObserver, interval: float) -> TaskState:
    final = asyncio.run(observer.follow(interval=interval, on_update=_simple_printer()))
    suffix = f": {final.error}" if final.error else ""
    click.echo(f"--- task {final.status.value}{suffix} ---")
    return final


@click.command("watch")
@click.option(
    "--interval",
    "-n",
    type=float,
    default=None,
    help="Poll interval in seconds (default: observer.poll_interval_ms).",
)
@click.option(
    "--simple",
    is_flag=True,
    help="Use plain line output instead of the Rich Live panel.",
)
@click.pass_context
@cli_command("watch")
@handle_keyboard_interrupt()
def watch_cmd(ctx: click.Context, interval: Optional[float], simple: bool) -> None:
    """Follow the current task until it finishes.

    Press Ctrl+C to stop watching; the task keeps running.
    """
    cli_ctx = get_context(ctx)
    poll = interval if interval is not None else cli_ctx.config.observer.poll_interval_ms / 1000
    observer = cli_ctx.observer()

    try:
        if simple:
            _run_simple(observer, poll)
        else:
            _run_live(observer, poll)
    except StateStoreError as exc:
        emit_exception(exc, remediation="Retry; another process is holding the state lock")
