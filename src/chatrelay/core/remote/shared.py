"""Helpers shared by the remote client and the orchestrator.

Provides secret redaction for anything that may end up in logs or in
``TaskState.error``, and error-message extraction from HTTP responses.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    import httpx

_SECRET_PATTERN = re.compile(
    r"(?i)"
    r"(?:"
    r"(?:api[_-]?key|token|bearer|authorization|secret|password|credential)"
    r"[\s:=]+"
    r")"
    r"['\"]?([^\s'\"]{8,})['\"]?",
)

# OpenAI-style keys that appear without a label
_BARE_KEY_PATTERN = re.compile(r"\bsk-[A-Za-z0-9_-]{8,}")

_REDACTED = "****"


def redact_secrets(text: str, *, known_secret: Optional[str] = None) -> str:
    """Remove API keys and bearer tokens from a text string.

    Args:
        text: Input text that may contain secrets.
        known_secret: A credential to redact wherever it appears verbatim.

    Returns:
        Text with secrets replaced by ``****``.
    """
    if not text:
        return text

    if known_secret:
        text = text.replace(known_secret, _REDACTED)

    def _replace(match: re.Match) -> str:
        full = match.group(0)
        return full.replace(match.group(1), _REDACTED)

    text = _SECRET_PATTERN.sub(_replace, text)
    return _BARE_KEY_PATTERN.sub(_REDACTED, text)


def extract_error_message(response: "httpx.Response") -> str:
    """Error text from a non-success response.

    Uses the body's ``error.message`` (or a string ``error`` / ``message``
    field) when present, otherwise ``HTTP <status>``. The result is always
    redacted.
    """
    fallback = f"HTTP {response.status_code}"
    try:
        data = response.json()
    except ValueError:
        return fallback

    if not isinstance(data, dict):
        return fallback

    error_field = data.get("error")
    if isinstance(error_field, dict):
        msg = error_field.get("message")
    elif isinstance(error_field, str):
        msg = error_field
    else:
        msg = data.get("message")

    if not msg:
        return fallback
    return redact_secrets(str(msg))
