"""Unified error hierarchy for chatrelay.

All custom exception classes are defined in domain-specific modules within
this package. This __init__.py re-exports everything for convenient access.
"""

from chatrelay.core.errors.base import ERROR_CODES, error_codes_for
from chatrelay.core.errors.storage import StateStoreError
from chatrelay.core.errors.task import (
    BudgetingFailure,
    ChatRelayError,
    ExportFailure,
    ExtractionFailure,
    InvalidTransitionError,
    RemoteCallFailure,
    RemoteTimeout,
    UserCancelled,
)

__all__ = [
    "ERROR_CODES",
    "error_codes_for",
    "BudgetingFailure",
    "ChatRelayError",
    "ExportFailure",
    "ExtractionFailure",
    "InvalidTransitionError",
    "RemoteCallFailure",
    "RemoteTimeout",
    "StateStoreError",
    "UserCancelled",
]
