"""State storage error classes."""

from typing import Optional


class StateStoreError(RuntimeError):
    """Raised when the durable state slot cannot be read or written.

    Attributes:
        path: File backing the slot, when known
    """

    def __init__(self, message: str, *, path: Optional[str] = None):
        super().__init__(message)
        self.path = path
