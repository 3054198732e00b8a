"""ChatRelayConfig dataclass and global config accessors.

Contains the ``ChatRelayConfig`` dataclass (field definitions and logging
setup) and the global ``get_config`` / ``set_config`` helpers. Loading logic
lives in the ``_ConfigLoader`` mixin (``loader.py``).
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from chatrelay.config.domains import (
    BudgetSettings,
    ExportSettings,
    ObserverSettings,
    RemoteSettings,
    TaskSettings,
)
from chatrelay.config.loader import _ConfigLoader

_HANDLER_MARKER = "_chatrelay_handler"


def _default_state_dir() -> Path:
    return Path.home() / ".chatrelay"


@dataclass
class ChatRelayConfig(_ConfigLoader):
    """Process configuration for chatrelay."""

    remote: RemoteSettings = field(default_factory=RemoteSettings)
    budget: BudgetSettings = field(default_factory=BudgetSettings)
    task: TaskSettings = field(default_factory=TaskSettings)
    export: ExportSettings = field(default_factory=ExportSettings)
    observer: ObserverSettings = field(default_factory=ObserverSettings)

    state_dir: Path = field(default_factory=_default_state_dir)

    log_level: str = "WARNING"
    structured_logging: bool = False

    def output_dir(self) -> Path:
        """Directory exported conversations are written to."""
        if self.export.output_dir:
            return Path(self.export.output_dir).expanduser()
        return Path.cwd()

    def setup_logging(self) -> None:
        """Configure logging based on settings.

        Safe to call more than once; the handler installed by a previous call
        is replaced rather than duplicated.
        """
        level = getattr(logging, self.log_level, logging.WARNING)

        if self.structured_logging:
            formatter = logging.Formatter(
                '{"timestamp":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}'
            )
        else:
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

        root_logger = logging.getLogger("chatrelay")
        for existing in list(root_logger.handlers):
            if getattr(existing, _HANDLER_MARKER, False):
                root_logger.removeHandler(existing)

        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_MARKER, True)

        root_logger.setLevel(level)
        root_logger.addHandler(handler)


# Global configuration instance
_config: Optional[ChatRelayConfig] = None


def get_config() -> ChatRelayConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ChatRelayConfig.from_env()
    return _config


def set_config(config: Optional[ChatRelayConfig]) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
