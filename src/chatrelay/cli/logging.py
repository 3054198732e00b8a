"""CLI logging helpers."""

import functools
import logging
import time
from typing import Any, Callable, TypeVar

F = TypeVar("F", bound=Callable[..., Any])


def get_cli_logger() -> logging.Logger:
    return logging.getLogger("chatrelay.cli")


def cli_command(name: str) -> Callable[[F], F]:
    """Log entry, exit and duration of a CLI command."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            logger = get_cli_logger()
            logger.debug("Running command %s", name)
            started = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                logger.debug("Command %s finished in %.1fms", name, (time.perf_counter() - started) * 1000)

        return wrapper  # type: ignore[return-value]

    return decorator
