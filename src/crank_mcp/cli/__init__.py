"""crank CLI - JSON-only command-line interface.

All commands emit structured JSON to stdout for reliable parsing.
"""

from crank_mcp.cli.config import CLIContext, create_context
from crank_mcp.cli.logging import CLILogContext, cli_command, get_cli_logger, get_request_id
from crank_mcp.cli.main import cli
from crank_mcp.cli.output import emit, emit_error, emit_success
from crank_mcp.cli.registry import get_context, set_context

__all__ = [
    "cli",
    "CLIContext",
    "create_context",
    "get_context",
    "set_context",
    "emit",
    "emit_error",
    "emit_success",
    "CLILogContext",
    "cli_command",
    "get_cli_logger",
    "get_request_id",
]
