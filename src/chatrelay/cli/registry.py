"""Per-invocation CLI context."""

from dataclasses import dataclass
from pathlib import Path

import click

from chatrelay.config import ChatRelayConfig
from chatrelay.core.task.signals import signal_dir_for
from chatrelay.core.task.sync import StateStore, StateSynchronizer, TaskObserver


@dataclass
class CLIContext:
    """Configuration and state locations shared by all commands."""

    config: ChatRelayConfig

    @property
    def state_dir(self) -> Path:
        return self.config.state_dir

    @property
    def signal_dir(self) -> Path:
        return signal_dir_for(self.state_dir)

    def synchronizer(self) -> StateSynchronizer:
        return StateSynchronizer.for_directory(self.state_dir)

    def observer(self) -> TaskObserver:
        return TaskObserver(StateStore(self.state_dir))


def get_context(ctx: click.Context) -> CLIContext:
    cli_ctx = ctx.find_object(CLIContext)
    if cli_ctx is None:
        cli_ctx = CLIContext(config=ChatRelayConfig.from_env())
        ctx.obj = cli_ctx
    return cli_ctx
