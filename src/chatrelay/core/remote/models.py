"""Remote endpoint configuration and provider presets."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Optional, Tuple

if TYPE_CHECKING:
    from chatrelay.config.domains import RemoteSettings


@dataclass(frozen=True)
class ProviderPreset:
    """Base URL and suggested models for a named OpenAI-compatible provider."""

    name: str
    base_url: str
    models: Tuple[str, ...] = ()

    @property
    def default_model(self) -> str:
        return self.models[0] if self.models else ""


PROVIDER_PRESETS: Dict[str, ProviderPreset] = {
    "openai": ProviderPreset(
        "openai",
        "https://api.openai.com/v1",
        ("gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-3.5-turbo"),
    ),
    "anthropic": ProviderPreset(
        "anthropic",
        "https://api.anthropic.com/v1",
        (
            "claude-sonnet-4-20250514",
            "claude-3-5-sonnet-20241022",
            "claude-3-5-haiku-20241022",
            "claude-3-opus-20240229",
        ),
    ),
    "deepseek": ProviderPreset(
        "deepseek",
        "https://api.deepseek.com/v1",
        ("deepseek-chat", "deepseek-coder", "deepseek-reasoner"),
    ),
    "google": ProviderPreset(
        "google",
        "https://generativelanguage.googleapis.com/v1beta/openai",
        ("gemini-2.0-flash", "gemini-1.5-pro", "gemini-1.5-flash"),
    ),
    "openrouter": ProviderPreset(
        "openrouter",
        "https://openrouter.ai/api/v1",
        (
            "anthropic/claude-sonnet-4",
            "openai/gpt-4o",
            "google/gemini-2.0-flash-exp:free",
            "deepseek/deepseek-chat",
        ),
    ),
    "custom": ProviderPreset("custom", ""),
}


@dataclass(frozen=True)
class RemoteConfig:
    """Where and how to call the summarization endpoint.

    Owned by the caller and passed through unchanged. The credential is kept
    out of ``repr`` so configs can be logged.
    """

    endpoint: str
    credential: str = field(default="", repr=False)
    model: str = ""
    provider: str = "custom"

    @property
    def is_configured(self) -> bool:
        """True when an automatic summary can be requested."""
        return bool(self.endpoint and self.credential and self.model)

    @property
    def completions_url(self) -> str:
        return f"{self.endpoint.rstrip('/')}/chat/completions"

    @classmethod
    def from_provider(
        cls,
        provider: str,
        credential: str = "",
        *,
        model: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> "RemoteConfig":
        """Build a config from a provider preset, with optional overrides.

        Raises:
            ValueError: If the provider is not a known preset
        """
        preset = PROVIDER_PRESETS.get(provider.lower())
        if preset is None:
            raise ValueError(
                f"Unknown provider '{provider}'. Valid options: {', '.join(sorted(PROVIDER_PRESETS))}"
            )
        return cls(
            endpoint=endpoint or preset.base_url,
            credential=credential,
            model=model or preset.default_model,
            provider=preset.name,
        )

    @classmethod
    def from_settings(cls, settings: "RemoteSettings") -> "RemoteConfig":
        return cls.from_provider(
            settings.provider,
            settings.api_key,
            model=settings.model or None,
            endpoint=settings.endpoint or None,
        )
