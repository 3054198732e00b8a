"""ChatRelayConfig loading logic.

Provides ``_ConfigLoader``, a mixin class whose methods are inherited by
``ChatRelayConfig`` (defined in ``settings.py``). Keeping the loading code here
leaves ``settings.py`` focused on field definitions.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from chatrelay.config.settings import ChatRelayConfig

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # Python < 3.11 fallback

from chatrelay.config.domains import (
    BudgetSettings,
    ExportSettings,
    ObserverSettings,
    RemoteSettings,
    TaskSettings,
)
from chatrelay.config.parsing import (
    _normalize_export_format,
    _normalize_provider,
    _parse_non_negative_float,
    _parse_positive_int,
    _try_parse_bool,
)

logger = logging.getLogger(__name__)

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class _ConfigLoader:
    """Mixin providing config-loading methods for ``ChatRelayConfig``."""

    if TYPE_CHECKING:
        remote: RemoteSettings
        budget: BudgetSettings
        task: TaskSettings
        export: ExportSettings
        observer: ObserverSettings
        state_dir: Path
        log_level: str
        structured_logging: bool

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "ChatRelayConfig":
        """
        Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables
        2. Project TOML config (./chatrelay.toml)
        3. User TOML config (~/.chatrelay.toml)
        4. XDG config (~/.config/chatrelay/config.toml)
        5. Default values

        An explicit ``config_file`` (or ``CHATRELAY_CONFIG_FILE``) replaces
        layers 2-4.
        """
        config = cls()

        toml_path = config_file or os.environ.get("CHATRELAY_CONFIG_FILE")
        if toml_path:
            config._load_toml(Path(toml_path))
        else:
            xdg_config_home = os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
            xdg_config = Path(xdg_config_home) / "chatrelay" / "config.toml"
            if xdg_config.exists():
                config._load_toml(xdg_config)
                logger.debug("Loaded XDG config from %s", xdg_config)

            home_config = Path.home() / ".chatrelay.toml"
            if home_config.exists():
                config._load_toml(home_config)
                logger.debug("Loaded user config from %s", home_config)

            project_config = Path("chatrelay.toml")
            if project_config.exists():
                config._load_toml(project_config)
                logger.debug("Loaded project config from %s", project_config)

        config._load_env()
        return config  # type: ignore[return-value]

    def _load_toml(self, path: Path) -> None:
        """Load configuration from a TOML file, overriding current values."""
        if not path.exists():
            logger.warning("Config file not found: %s", path)
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            logger.error("Error loading config file %s: %s", path, e)
            return

        self._apply_toml(data)

    def _apply_toml(self, data: Dict[str, Any]) -> None:
        if "remote" in data:
            merged = {**vars(self.remote), **data["remote"]}
            self.remote = RemoteSettings.from_toml_dict(merged)

        if "budget" in data:
            merged = {**vars(self.budget), **data["budget"]}
            self.budget = BudgetSettings.from_toml_dict(merged)

        if "task" in data:
            merged = {**vars(self.task), **data["task"]}
            self.task = TaskSettings.from_toml_dict(merged)

        if "export" in data:
            merged = {**vars(self.export), **data["export"]}
            self.export = ExportSettings.from_toml_dict(merged)

        if "observer" in data:
            merged = {**vars(self.observer), **data["observer"]}
            self.observer = ObserverSettings.from_toml_dict(merged)

        storage = data.get("storage", {})
        if state_dir := storage.get("state_dir"):
            self.state_dir = Path(state_dir).expanduser()

        logging_cfg = data.get("logging", {})
        if "level" in logging_cfg:
            self._set_log_level(str(logging_cfg["level"]))
        if "structured" in logging_cfg:
            parsed = _try_parse_bool(logging_cfg["structured"])
            if parsed is not None:
                self.structured_logging = parsed

    def _set_log_level(self, value: str) -> None:
        level = value.strip().upper()
        if level not in _VALID_LOG_LEVELS:
            logger.warning("Invalid log level '%s', keeping %s", value, self.log_level)
            return
        self.log_level = level

    def _load_env(self) -> None:
        """Load configuration from CHATRELAY_* environment variables."""
        if provider := os.environ.get("CHATRELAY_PROVIDER"):
            self.remote.provider = _normalize_provider(provider, self.remote.provider)
        if endpoint := os.environ.get("CHATRELAY_ENDPOINT"):
            self.remote.endpoint = endpoint.strip()
        if api_key := os.environ.get("CHATRELAY_API_KEY"):
            self.remote.api_key = api_key
        if model := os.environ.get("CHATRELAY_MODEL"):
            self.remote.model = model.strip()

        if max_tokens := os.environ.get("CHATRELAY_MAX_TOKENS"):
            self.budget.max_tokens = _parse_positive_int(
                max_tokens, "CHATRELAY_MAX_TOKENS", self.budget.max_tokens
            )

        if timeout_ms := os.environ.get("CHATRELAY_TIMEOUT_MS"):
            self.task.timeout_ms = _parse_positive_int(timeout_ms, "CHATRELAY_TIMEOUT_MS", self.task.timeout_ms)
        if grace := os.environ.get("CHATRELAY_ABORT_GRACE_SECONDS"):
            self.task.abort_grace_seconds = _parse_non_negative_float(
                grace, "CHATRELAY_ABORT_GRACE_SECONDS", self.task.abort_grace_seconds
            )
        if auto_summary := os.environ.get("CHATRELAY_AUTO_SUMMARY"):
            parsed = _try_parse_bool(auto_summary)
            if parsed is None:
                logger.warning("Invalid CHATRELAY_AUTO_SUMMARY value '%s', ignoring", auto_summary)
            else:
                self.task.auto_summary = parsed

        if export_format := os.environ.get("CHATRELAY_EXPORT_FORMAT"):
            self.export.format = _normalize_export_format(export_format)
        if output_dir := os.environ.get("CHATRELAY_OUTPUT_DIR"):
            self.export.output_dir = output_dir

        if state_dir := os.environ.get("CHATRELAY_STATE_DIR"):
            self.state_dir = Path(state_dir).expanduser()

        if poll := os.environ.get("CHATRELAY_POLL_INTERVAL_MS"):
            self.observer.poll_interval_ms = _parse_positive_int(
                poll, "CHATRELAY_POLL_INTERVAL_MS", self.observer.poll_interval_ms
            )

        if log_level := os.environ.get("CHATRELAY_LOG_LEVEL"):
            self._set_log_level(log_level)
        if structured := os.environ.get("CHATRELAY_STRUCTURED_LOGGING"):
            parsed = _try_parse_bool(structured)
            if parsed is not None:
                self.structured_logging = parsed
