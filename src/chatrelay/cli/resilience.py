"""Interrupt handling for long-running CLI commands."""

import functools
from typing import Any, Callable, TypeVar

from chatrelay.cli.output import emit_error

F = TypeVar("F", bound=Callable[..., Any])


def handle_keyboard_interrupt() -> Callable[[F], F]:
    """Turn Ctrl+C into an ``INTERRUPTED`` error envelope instead of a traceback."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except KeyboardInterrupt:
                emit_error(
                    "Interrupted by user",
                    code="INTERRUPTED",
                    error_type="cancelled",
                    remediation="Run 'chatrelay status' to see where the task stopped",
                )

        return wrapper  # type: ignore[return-value]

    return decorator
