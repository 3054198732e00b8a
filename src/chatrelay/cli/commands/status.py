"""chatrelay status command."""

import click

from chatrelay.cli.logging import cli_command
from chatrelay.cli.output import emit_exception, emit_success
from chatrelay.cli.registry import get_context
from chatrelay.core.errors import StateStoreError


@click.command("status")
@click.option("--events", is_flag=True, help="Include the events published for the current task.")
@click.pass_context
@cli_command("status")
def status_cmd(ctx: click.Context, events: bool) -> None:
    """Show the current task state."""
    cli_ctx = get_context(ctx)
    try:
        state = cli_ctx.observer().read()
    except StateStoreError as exc:
        emit_exception(exc, remediation="Retry; another process is holding the state lock")

    data = state.model_dump(mode="json")
    if events:
        stream = cli_ctx.synchronizer().events
        data["events"] = [
            {"sequence": event.sequence, "timestamp": event.timestamp.isoformat(), "status": event.state.status.value}
            for event in (stream.read() if stream is not None else [])
        ]
    emit_success(data)
