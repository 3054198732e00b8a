"""chatrelay reset command."""

import click

from chatrelay.cli.logging import cli_command
from chatrelay.cli.output import emit_error, emit_success
from chatrelay.cli.registry import get_context
from chatrelay.core.task import TaskOrchestrator


@click.command("reset")
@click.pass_context
@cli_command("reset")
def reset_cmd(ctx: click.Context) -> None:
    """Return a finished task to idle.

    Rejected while a task is running; cancel it first.
    """
    cli_ctx = get_context(ctx)
    orchestrator = TaskOrchestrator(cli_ctx.synchronizer())
    orchestrator.attach()
    response = orchestrator.reset()
    if not response.success:
        emit_error(
            response.error or "Reset rejected",
            code=response.error_code or "TASK_ACTIVE",
            error_type="conflict",
            remediation="Run 'chatrelay cancel' first",
            details={"status": response.state.status.value if response.state else None},
        )
    emit_success({"status": response.state.status.value if response.state else "idle", "message": response.message})
