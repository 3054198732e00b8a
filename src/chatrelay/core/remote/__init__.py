"""Remote summarization: endpoint config, prompts and the HTTP client."""

from chatrelay.core.remote.client import SummarizationClient
from chatrelay.core.remote.models import PROVIDER_PRESETS, ProviderPreset, RemoteConfig
from chatrelay.core.remote.prompts import build_handoff_prompt
from chatrelay.core.remote.shared import extract_error_message, redact_secrets

__all__ = [
    "PROVIDER_PRESETS",
    "ProviderPreset",
    "RemoteConfig",
    "SummarizationClient",
    "build_handoff_prompt",
    "extract_error_message",
    "redact_secrets",
]
