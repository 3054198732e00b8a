"""Configuration for chatrelay.

Supports TOML files and environment variables:
- CHATRELAY_CONFIG_FILE: explicit TOML file
- CHATRELAY_API_KEY / CHATRELAY_PROVIDER / CHATRELAY_ENDPOINT / CHATRELAY_MODEL
- CHATRELAY_MAX_TOKENS, CHATRELAY_TIMEOUT_MS, CHATRELAY_AUTO_SUMMARY
- CHATRELAY_STATE_DIR, CHATRELAY_OUTPUT_DIR, CHATRELAY_EXPORT_FORMAT
- CHATRELAY_LOG_LEVEL, CHATRELAY_STRUCTURED_LOGGING
"""

from chatrelay.config.domains import (
    BudgetSettings,
    ExportSettings,
    ObserverSettings,
    RemoteSettings,
    TaskSettings,
)
from chatrelay.config.settings import ChatRelayConfig, get_config, set_config

__all__ = [
    "BudgetSettings",
    "ChatRelayConfig",
    "ExportSettings",
    "ObserverSettings",
    "RemoteSettings",
    "TaskSettings",
    "get_config",
    "set_config",
]
