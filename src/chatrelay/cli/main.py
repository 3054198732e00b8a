"""chatrelay command-line entry point."""

from pathlib import Path
from typing import Optional

import click

from chatrelay import __version__
from chatrelay.cli.commands import (
    cancel_cmd,
    estimate_cmd,
    export_cmd,
    reset_cmd,
    run_cmd,
    status_cmd,
    watch_cmd,
)
from chatrelay.cli.registry import CLIContext
from chatrelay.config import ChatRelayConfig, set_config


@click.group()
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False),
    default=None,
    help="TOML config file (overrides the layered lookup).",
)
@click.option(
    "--state-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding the task state, events and signals.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Process log level (logs go to stderr).",
)
@click.version_option(__version__, prog_name="chatrelay")
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Optional[str],
    state_dir: Optional[Path],
    log_level: Optional[str],
) -> None:
    """Export chat conversations and compress them into context snapshots."""
    config = ChatRelayConfig.from_env(config_file)
    if state_dir is not None:
        config.state_dir = state_dir
    if log_level is not None:
        config.log_level = log_level.upper()
    config.setup_logging()
    set_config(config)
    ctx.obj = CLIContext(config=config)


cli.add_command(run_cmd)
cli.add_command(status_cmd)
cli.add_command(cancel_cmd)
cli.add_command(reset_cmd)
cli.add_command(watch_cmd)
cli.add_command(export_cmd)
cli.add_command(estimate_cmd)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
