"""Domain-specific configuration dataclasses.

Contains small, focused configuration classes for the distinct concerns of a
relay task: the remote endpoint, the token budget, task timing, export output
and observer polling.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from chatrelay.config.parsing import (
    _normalize_export_format,
    _normalize_provider,
    _parse_bool,
    _parse_non_negative_float,
    _parse_positive_int,
)

DEFAULT_MAX_TOKENS = 30000
DEFAULT_TIMEOUT_MS = 60000
DEFAULT_POLL_INTERVAL_MS = 500


@dataclass
class RemoteSettings:
    """Remote summarization endpoint settings.

    Attributes:
        provider: Named provider preset (openai, anthropic, deepseek, google,
            openrouter, custom)
        endpoint: Base URL override; empty means use the preset's URL
        api_key: Credential sent as a bearer token; empty disables auto-summary
        model: Model identifier; empty means the preset's first model
    """

    provider: str = "openai"
    endpoint: str = ""
    api_key: str = ""
    model: str = ""

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "RemoteSettings":
        """Create settings from TOML dict (typically [remote] section)."""
        return cls(
            provider=_normalize_provider(data.get("provider", "openai"), "openai"),
            endpoint=str(data.get("endpoint", "")).strip(),
            api_key=str(data.get("api_key", "")),
            model=str(data.get("model", "")).strip(),
        )


@dataclass
class BudgetSettings:
    """Token budget applied before the remote call."""

    max_tokens: int = DEFAULT_MAX_TOKENS

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "BudgetSettings":
        return cls(
            max_tokens=_parse_positive_int(
                data.get("max_tokens", DEFAULT_MAX_TOKENS), "budget.max_tokens", DEFAULT_MAX_TOKENS
            ),
        )


@dataclass
class TaskSettings:
    """Task timing and behavior.

    Attributes:
        timeout_ms: Deadline for the remote call in milliseconds
        abort_grace_seconds: How long to wait for a cancelled call to stop
        auto_summary: Send the export to the remote model when a key is set
        cancel_poll_interval_ms: How often a running task checks for a
            cross-process cancel signal
    """

    timeout_ms: int = DEFAULT_TIMEOUT_MS
    abort_grace_seconds: float = 2.0
    auto_summary: bool = True
    cancel_poll_interval_ms: int = 250

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "TaskSettings":
        return cls(
            timeout_ms=_parse_positive_int(
                data.get("timeout_ms", DEFAULT_TIMEOUT_MS), "task.timeout_ms", DEFAULT_TIMEOUT_MS
            ),
            abort_grace_seconds=_parse_non_negative_float(
                data.get("abort_grace_seconds", 2.0), "task.abort_grace_seconds", 2.0
            ),
            auto_summary=_parse_bool(data.get("auto_summary", True)),
            cancel_poll_interval_ms=_parse_positive_int(
                data.get("cancel_poll_interval_ms", 250), "task.cancel_poll_interval_ms", 250
            ),
        )


@dataclass
class ExportSettings:
    """Where and how exported conversations are written."""

    format: str = "markdown"
    output_dir: Optional[str] = None

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "ExportSettings":
        output_dir = data.get("output_dir")
        return cls(
            format=_normalize_export_format(str(data.get("format", "markdown"))),
            output_dir=str(output_dir) if output_dir else None,
        )


@dataclass
class ObserverSettings:
    """Polling behavior for observers attaching to a running task."""

    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "ObserverSettings":
        return cls(
            poll_interval_ms=_parse_positive_int(
                data.get("poll_interval_ms", DEFAULT_POLL_INTERVAL_MS),
                "observer.poll_interval_ms",
                DEFAULT_POLL_INTERVAL_MS,
            ),
        )
