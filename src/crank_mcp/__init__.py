"""crank-mcp - protected-zone aware vault tooling with a cached MCP client."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("crank-mcp")
except PackageNotFoundError:
    # Package not installed (development mode without editable install)
    __version__ = "0.1.0"

from crank_mcp.client import CrankMcpClient
from crank_mcp.config import CrankConfig, get_config

__all__ = ["__version__", "CrankMcpClient", "CrankConfig", "get_config"]
