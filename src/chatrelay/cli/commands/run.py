"""chatrelay run command: extract, export and summarize one conversation.

The task runs in this process. Other processes can follow it with
``chatrelay watch`` and stop it with ``chatrelay cancel``.
"""

import asyncio
from pathlib import Path
from typing import Optional

import click

from chatrelay.cli.logging import cli_command, get_cli_logger
from chatrelay.cli.output import emit_error, emit_success
from chatrelay.cli.registry import CLIContext, get_context
from chatrelay.cli.resilience import handle_keyboard_interrupt
from chatrelay.core.conversation import JsonFileExtractor
from chatrelay.core.remote import RemoteConfig
from chatrelay.core.task import ControlResponse, TaskOrchestrator, TaskRequest, TaskState, TaskStatus

logger = get_cli_logger()


async def _run_task(cli_ctx: CLIContext, request: TaskRequest) -> ControlResponse:
    config = cli_ctx.config
    orchestrator = TaskOrchestrator(
        cli_ctx.synchronizer(),
        abort_grace=config.task.abort_grace_seconds,
        signal_dir=cli_ctx.signal_dir,
        cancel_poll_interval=config.task.cancel_poll_interval_ms / 1000,
    )
    orchestrator.attach()
    response = await orchestrator.start(request)
    if not response.success:
        return response
    try:
        state = await orchestrator.wait()
    finally:
        await orchestrator.close()
    return ControlResponse(success=state.status == TaskStatus.COMPLETED, state=state)


def _state_summary(state: TaskState, output_dir: Path) -> dict:
    return {
        "status": state.status.value,
        "output_dir": str(output_dir),
        "filename": state.filename,
        "summary_filename": state.summary_filename,
        "result": state.result,
        "logs": state.logs,
    }


@click.command("run")
@click.argument("source", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--output-dir",
    "-o",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for the export and summary (default: config or cwd).",
)
@click.option(
    "--format",
    "export_format",
    type=click.Choice(["markdown", "json", "text"]),
    default=None,
    help="Export format (default: config).",
)
@click.option("--timeout-ms", type=click.IntRange(min=1), default=None, help="Remote call deadline.")
@click.option("--max-tokens", type=click.IntRange(min=0), default=None, help="Token budget for the summary request.")
@click.option("--no-summary", is_flag=True, help="Export only and produce a manual handoff prompt.")
@click.pass_context
@cli_command("run")
@handle_keyboard_interrupt()
def run_cmd(
    ctx: click.Context,
    source: Path,
    output_dir: Optional[Path],
    export_format: Optional[str],
    timeout_ms: Optional[int],
    max_tokens: Optional[int],
    no_summary: bool,
) -> None:
    """Export the conversation in SOURCE and generate a context snapshot.

    SOURCE is a JSON conversation export ({platform, title, messages}).
    """
    cli_ctx = get_context(ctx)
    config = cli_ctx.config

    try:
        remote = RemoteConfig.from_settings(config.remote)
    except ValueError as exc:
        emit_error(str(exc), code="VALIDATION_ERROR", error_type="validation")

    target_dir = output_dir or config.output_dir()
    request = TaskRequest(
        extractor=JsonFileExtractor(source),
        output_dir=target_dir,
        remote=remote,
        export_format=export_format or config.export.format,
        timeout_ms=timeout_ms or config.task.timeout_ms,
        max_tokens=config.budget.max_tokens if max_tokens is None else max_tokens,
        auto_summary=config.task.auto_summary and not no_summary,
    )
    logger.debug("Starting task for %s into %s", source, target_dir)

    response = asyncio.run(_run_task(cli_ctx, request))
    state = response.state or TaskState()

    if response.error_code:
        emit_error(
            response.error or "Task could not be started",
            code=response.error_code,
            error_type="conflict",
            remediation="Wait for the running task, or run 'chatrelay cancel'",
            details={"status": state.status.value, "owner_pid": state.owner_pid},
        )

    if state.status == TaskStatus.COMPLETED:
        emit_success(_state_summary(state, target_dir))
        return

    code = "TASK_CANCELLED" if state.status == TaskStatus.CANCELLED else "TASK_FAILED"
    emit_error(
        state.error or f"Task ended with status {state.status.value}",
        code=code,
        error_type="cancelled" if code == "TASK_CANCELLED" else "internal",
        details=_state_summary(state, target_dir),
    )
