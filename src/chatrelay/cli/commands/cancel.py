"""chatrelay cancel command.

Writes a cancel signal that the process running the task consumes on its
next poll. Does nothing when no task is active.
"""

import asyncio

import click

from chatrelay.cli.logging import cli_command, get_cli_logger
from chatrelay.cli.output import emit_error, emit_success
from chatrelay.cli.registry import get_context
from chatrelay.core.task.signals import write_cancel_signal

logger = get_cli_logger()


@click.command("cancel")
@click.option("--wait", is_flag=True, help="Poll until the task is no longer active.")
@click.option(
    "--timeout",
    type=float,
    default=10.0,
    show_default=True,
    help="Seconds to wait in --wait mode.",
)
@click.pass_context
@cli_command("cancel")
def cancel_cmd(ctx: click.Context, wait: bool, timeout: float) -> None:
    """Cancel the running task."""
    cli_ctx = get_context(ctx)
    observer = cli_ctx.observer()
    state = observer.read()

    if not state.is_active:
        emit_success(
            {
                "action": "noop",
                "status": state.status.value,
                "message": "No active task",
            }
        )
        return

    try:
        signal_file = write_cancel_signal(cli_ctx.signal_dir)
    except OSError as e:
        emit_error(
            f"Failed to write signal file: {e}",
            code="IO_ERROR",
            error_type="io",
            remediation="Check file system permissions for the state directory",
            details={"signal_dir": str(cli_ctx.signal_dir)},
        )
    logger.info("Cancel signal written to %s", signal_file)

    data = {
        "action": "cancel_requested",
        "signal_file": str(signal_file),
        "owner_pid": state.owner_pid,
        "message": "Cancel signal written. The task stops on its next signal poll.",
    }
    if wait:
        interval = cli_ctx.config.observer.poll_interval_ms / 1000
        final = asyncio.run(observer.follow(interval=interval, max_wait=timeout))
        data["final_status"] = final.status.value
        data["action"] = "cancelled" if not final.is_active else "timeout"
    emit_success(data)
