"""chatrelay estimate command: token estimate and budgeting preview."""

from pathlib import Path
from typing import Optional

import click

from chatrelay.cli.logging import cli_command
from chatrelay.cli.output import emit_exception, emit_success
from chatrelay.cli.registry import get_context
from chatrelay.core.budget import BudgetPipeline, estimate_tokens
from chatrelay.core.conversation import JsonFileExtractor, flatten_messages
from chatrelay.core.errors import BudgetingFailure, ExtractionFailure


@click.command("estimate")
@click.argument("source", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--max-tokens", type=click.IntRange(min=0), default=None, help="Budget to preview (default: config).")
@click.option("--show-content", is_flag=True, help="Include the budgeted text in the output.")
@click.pass_context
@cli_command("estimate")
def estimate_cmd(
    ctx: click.Context,
    source: Path,
    max_tokens: Optional[int],
    show_content: bool,
) -> None:
    """Estimate tokens for SOURCE and preview what would be sent."""
    config = get_context(ctx).config
    budget = config.budget.max_tokens if max_tokens is None else max_tokens
    try:
        conversation = JsonFileExtractor(source).extract()
        result = BudgetPipeline(budget).run(conversation)
    except (ExtractionFailure, BudgetingFailure) as exc:
        emit_exception(exc)

    data = {
        "messages": len(conversation.messages),
        "source_tokens": estimate_tokens(flatten_messages(conversation.messages)),
        "budget": budget,
        "estimated_tokens": result.estimated_tokens,
        "truncated": result.truncated,
        "kept_messages": result.kept_messages,
        "dropped_messages": result.dropped_messages,
    }
    if show_content:
        data["content"] = result.content
    emit_success(data)
