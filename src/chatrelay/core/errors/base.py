"""Error-to-code mapping registry.

Gives every chatrelay exception a machine-readable ``(code, type)`` pair so the
CLI can emit consistent error envelopes.

Usage:
    from chatrelay.core.errors.base import error_codes_for

    try:
        do_something()
    except ChatRelayError as exc:
        code, error_type = error_codes_for(exc)
"""

from __future__ import annotations

from typing import Dict, Tuple, Type

from chatrelay.core.errors.storage import StateStoreError
from chatrelay.core.errors.task import (
    BudgetingFailure,
    ExportFailure,
    ExtractionFailure,
    InvalidTransitionError,
    RemoteCallFailure,
    RemoteTimeout,
    UserCancelled,
)

ERROR_CODES: Dict[Type[Exception], Tuple[str, str]] = {
    ExtractionFailure: ("EXTRACTION_FAILED", "not_found"),
    ExportFailure: ("EXPORT_FAILED", "internal"),
    RemoteCallFailure: ("REMOTE_CALL_FAILED", "ai_provider"),
    RemoteTimeout: ("REMOTE_TIMEOUT", "unavailable"),
    UserCancelled: ("USER_CANCELLED", "conflict"),
    BudgetingFailure: ("BUDGETING_FAILED", "internal"),
    InvalidTransitionError: ("INVALID_STATE_TRANSITION", "conflict"),
    StateStoreError: ("LOCK_TIMEOUT", "unavailable"),
}

_DEFAULT_CODES = ("INTERNAL_ERROR", "internal")


def error_codes_for(exc: BaseException) -> Tuple[str, str]:
    """Return the ``(code, type)`` pair for an exception.

    Looks up the exception's class hierarchy so subclasses inherit their
    parent's mapping. Unknown exceptions map to ``INTERNAL_ERROR``.
    """
    for klass in type(exc).__mro__:
        if klass in ERROR_CODES:
            return ERROR_CODES[klass]
    return _DEFAULT_CODES
