"""Request IDs and start/finish logging for CLI commands."""

import logging
import sys
import time
import uuid
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from crank_mcp.core.logging_config import request_id_var

__all__ = [
    "CLILogContext",
    "cli_command",
    "generate_request_id",
    "get_cli_logger",
    "get_request_id",
]

T = TypeVar("T")

_logger = logging.getLogger("crank_mcp.cli")


def generate_request_id() -> str:
    """Short UUID suitable for log correlation."""
    return f"cli_{uuid.uuid4().hex[:12]}"


def get_request_id() -> str:
    return request_id_var.get()


class CLILogContext:
    """Set a request ID for the duration of a command.

    Example:
        >>> with CLILogContext() as ctx:
        ...     logger.info("Scanning")  # record.request_id == ctx.request_id
    """

    def __init__(self, request_id: Optional[str] = None):
        self.request_id = request_id or generate_request_id()
        self._token = None

    def __enter__(self) -> "CLILogContext":
        self._token = request_id_var.set(self.request_id)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._token is not None:
            request_id_var.reset(self._token)


def get_cli_logger() -> logging.Logger:
    return _logger


def cli_command(
    command_name: Optional[str] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator for CLI commands.

    Generates a request ID, logs start and completion with duration, and
    exits with 130 on Ctrl+C.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = command_name or func.__name__

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            with CLILogContext():
                start = time.perf_counter()
                success = True
                _logger.debug(f"CLI command started: {name}", extra={"command": name})
                try:
                    return func(*args, **kwargs)
                except KeyboardInterrupt:
                    success = False
                    # 128 + SIGINT
                    sys.exit(130)
                except Exception:
                    success = False
                    raise
                finally:
                    _logger.debug(
                        f"CLI command completed: {name}",
                        extra={
                            "command": name,
                            "success": success,
                            "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                        },
                    )

        return wrapper

    return decorator
