"""Log formatting for crank-mcp with tool-call context injection.

Records emitted while a remote tool call is running carry the tool name,
and records emitted under a CLI command carry its request ID, so cache
hits, coalesced calls and failures can be traced back to the call that
caused them.

Usage:
    from crank_mcp.core.logging_config import configure_logging, tool_context

    configure_logging(level="DEBUG", format="human")

    with tool_context("get_backlinks"):
        logger.debug("Cache miss")  # record.tool_name == "get_backlinks"
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, TextIO, Union

__all__ = [
    "ToolContextFilter",
    "StructuredFormatter",
    "HumanReadableFormatter",
    "configure_logging",
    "tool_context",
    "get_current_tool",
    "request_id_var",
]

ROOT_LOGGER = "crank_mcp"

current_tool_var: ContextVar[str] = ContextVar("current_tool", default="")
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


@contextmanager
def tool_context(tool_name: str) -> Iterator[None]:
    """Mark log records emitted inside the block with ``tool_name``."""
    token = current_tool_var.set(tool_name)
    try:
        yield
    finally:
        current_tool_var.reset(token)


def get_current_tool() -> str:
    return current_tool_var.get()


class ToolContextFilter(logging.Filter):
    """Stamp ``tool_name`` and ``request_id`` onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.tool_name = current_tool_var.get() or "-"
        record.request_id = request_id_var.get() or "-"
        return True


# Attributes every LogRecord has; anything else came in via ``extra``.
_STANDARD_ATTRS = frozenset(
    {
        "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
        "module", "lineno", "funcName", "created", "msecs", "relativeCreated",
        "thread", "threadName", "processName", "process", "message",
        "exc_info", "exc_text", "stack_info", "taskName",
        "tool_name", "request_id",
    }
)


class StructuredFormatter(logging.Formatter):
    """One JSON object per line.

    Example output:
        {"timestamp":"2026-01-15T10:30:45.123+00:00","level":"DEBUG",
         "logger":"crank_mcp.core.cache","message":"Cache hit for health_check",
         "tool":"health_check","extra":{"cache_key":"health_check:{}"}}
    """

    def __init__(self, *, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        tool = getattr(record, "tool_name", "-")
        if tool and tool != "-":
            entry["tool"] = tool
        request_id = getattr(record, "request_id", "-")
        if request_id and request_id != "-":
            entry["request_id"] = request_id

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        if self.include_extra:
            extra = {}
            for key, value in record.__dict__.items():
                if key in _STANDARD_ATTRS:
                    continue
                try:
                    json.dumps(value)
                    extra[key] = value
                except (TypeError, ValueError):
                    extra[key] = str(value)
            if extra:
                entry["extra"] = extra

        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """``2026-01-15 10:30:45 [DEBUG] [get_backlinks] core.cache: Cache hit``"""

    def __init__(self, *, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        parts = []
        if self.include_timestamp:
            parts.append(
                datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
            )
        parts.append(f"[{record.levelname}]")

        tool = getattr(record, "tool_name", "-")
        if tool and tool != "-":
            parts.append(f"[{tool}]")

        name = record.name
        if name.startswith(ROOT_LOGGER + "."):
            name = name[len(ROOT_LOGGER) + 1 :]
        parts.append(f"{name}:")
        parts.append(record.getMessage())

        result = " ".join(parts)
        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)
        return result


def configure_logging(
    *,
    level: Union[int, str] = logging.INFO,
    format: str = "structured",
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Configure the ``crank_mcp`` logger.

    Replaces any handlers installed by an earlier call.

    Args:
        level: Log level name or number
        format: "structured" for JSON lines, "human" for readable lines
        stream: Output stream (default: stderr, stdout is reserved for
            CLI JSON output)

    Returns:
        The configured package logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    if format == "structured":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanReadableFormatter())
    handler.addFilter(ToolContextFilter())

    logger.addHandler(handler)
    return logger
