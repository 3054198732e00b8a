"""Task lifecycle error classes.

These are raised by the collaborators the orchestrator drives (extractor,
exporter, budgeting pipeline, remote client) and are always caught at the
orchestrator boundary. Callers observe them only through ``TaskState``.
"""

from __future__ import annotations

from typing import Optional


class ChatRelayError(Exception):
    """Base exception for chatrelay."""


class ExtractionFailure(ChatRelayError):
    """Raised when no conversation could be found or parsed from the source."""

    def __init__(self, message: str = "Extraction failed", *, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class ExportFailure(ChatRelayError):
    """Raised when the exported conversation could not be written."""

    def __init__(self, message: str, *, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class RemoteCallFailure(ChatRelayError):
    """Non-success response or transport error from the summarization endpoint.

    Attributes:
        status_code: HTTP status code if a response was received
        retryable: Whether the request could succeed if repeated
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class RemoteTimeout(ChatRelayError):
    """Raised when the remote call deadline elapsed before a response arrived."""

    def __init__(self, message: str, *, timeout: Optional[float] = None, elapsed: Optional[float] = None):
        super().__init__(message)
        self.timeout = timeout
        self.elapsed = elapsed


class UserCancelled(ChatRelayError):
    """Raised when the user explicitly cancelled the task."""


class BudgetingFailure(ChatRelayError):
    """Raised when the content budgeting pipeline hit unexpected input."""

    def __init__(self, message: str, *, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage


class InvalidTransitionError(ChatRelayError):
    """Raised internally when a task state transition is not allowed."""

    def __init__(self, from_status: str, to_status: str):
        super().__init__(f"Invalid task transition: {from_status} -> {to_status}")
        self.from_status = from_status
        self.to_status = to_status
