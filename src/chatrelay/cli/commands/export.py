"""chatrelay export command: extract and export without a remote call."""

from pathlib import Path
from typing import Optional

import click

from chatrelay.cli.logging import cli_command
from chatrelay.cli.output import emit_exception, emit_success
from chatrelay.cli.registry import get_context
from chatrelay.core.conversation import ConversationExporter, JsonFileExtractor
from chatrelay.core.errors import ExportFailure, ExtractionFailure


@click.command("export")
@click.argument("source", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--output-dir",
    "-o",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for the export (default: config or cwd).",
)
@click.option(
    "--format",
    "export_format",
    type=click.Choice(["markdown", "json", "text"]),
    default=None,
    help="Export format (default: config).",
)
@click.pass_context
@cli_command("export")
def export_cmd(
    ctx: click.Context,
    source: Path,
    output_dir: Optional[Path],
    export_format: Optional[str],
) -> None:
    """Export the conversation in SOURCE without summarizing it."""
    config = get_context(ctx).config
    exporter = ConversationExporter(output_dir or config.output_dir(), export_format or config.export.format)
    try:
        conversation = JsonFileExtractor(source).extract()
        result = exporter.export(conversation)
    except (ExtractionFailure, ExportFailure) as exc:
        emit_exception(exc)

    emit_success(
        {
            "path": str(result.path),
            "filename": result.filename,
            "format": result.format,
            "title": conversation.title,
            "platform": conversation.platform.value,
            "messages": len(conversation.messages),
        }
    )
