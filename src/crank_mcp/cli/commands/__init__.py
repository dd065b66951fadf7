"""CLI command groups."""

from crank_mcp.cli.commands.links import links
from crank_mcp.cli.commands.tools import tools
from crank_mcp.cli.commands.zones import zones

__all__ = [
    "links",
    "tools",
    "zones",
]
