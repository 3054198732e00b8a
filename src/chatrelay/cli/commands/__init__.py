"""CLI command implementations."""

from chatrelay.cli.commands.cancel import cancel_cmd
from chatrelay.cli.commands.estimate import estimate_cmd
from chatrelay.cli.commands.export import export_cmd
from chatrelay.cli.commands.reset import reset_cmd
from chatrelay.cli.commands.run import run_cmd
from chatrelay.cli.commands.status import status_cmd
from chatrelay.cli.commands.watch import watch_cmd

__all__ = [
    "cancel_cmd",
    "estimate_cmd",
    "export_cmd",
    "reset_cmd",
    "run_cmd",
    "status_cmd",
    "watch_cmd",
]
