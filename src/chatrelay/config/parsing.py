"""Parsing and normalization helpers for configuration values.

Provides boolean parsing plus export-format and provider normalization used by the other
config sub-modules.
"""

import logging
from typing import Any, Optional

from chatrelay.core.remote.models import PROVIDER_PRESETS

logger = logging.getLogger(__name__)

_VALID_EXPORT_FORMATS = {"markdown", "json", "text"}


def _normalize_provider(value: Any, default: str) -> str:
    """Lower-cased provider name, or ``default`` if it names no preset."""
    normalized = str(value).strip().lower()
    if normalized not in PROVIDER_PRESETS:
        logger.warning(
            "Invalid provider '%s', keeping '%s'. Valid options: %s",
            value,
            default,
            ", ".join(sorted(PROVIDER_PRESETS)),
        )
        return default
    return normalized


def _normalize_export_format(value: str) -> str:
    normalized = value.strip().lower()
    if normalized == "md":
        normalized = "markdown"
    elif normalized == "txt":
        normalized = "text"
    if normalized not in _VALID_EXPORT_FORMATS:
        logger.warning(
            "Invalid export format '%s'. Falling back to 'markdown'. Valid options: %s",
            value,
            ", ".join(sorted(_VALID_EXPORT_FORMATS)),
        )
        return "markdown"
    return normalized


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def _try_parse_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    normalized = str(value).strip().lower()
    if normalized in {"true", "1", "yes", "on"}:
        return True
    if normalized in {"false", "0", "no", "off"}:
        return False
    return None


def _parse_positive_int(value: Any, name: str, default: int) -> int:
    """Parse a strictly positive integer, keeping ``default`` on bad input."""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s value '%s', using default %s", name, value, default)
        return default
    if parsed <= 0:
        logger.warning("%s must be positive, got %s; using default %s", name, parsed, default)
        return default
    return parsed


def _parse_non_negative_float(value: Any, name: str, default: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s value '%s', using default %s", name, value, default)
        return default
    if parsed < 0:
        logger.warning("%s must not be negative, got %s; using default %s", name, parsed, default)
        return default
    return parsed
