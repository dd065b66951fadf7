"""
MCP client for the vault indexing server.

Spawns the indexing server as a child process over stdio, and exposes
typed helpers for its search, link-graph, schema and health tools. Every
call goes through a ResponseCache, so read-only tools are memoized per
their tier and mutations invalidate the entries they affect.

Example:
    async with CrankMcpClient(config) as client:
        backlinks = await client.get_backlinks("notes/project.md")
        health = await client.health_check()
"""

import asyncio
import json
import logging
import os
import re
import sys
import time
from contextlib import AsyncExitStack
from datetime import timedelta
from typing import Any, Dict, Mapping, Optional

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.types import Implementation

from crank_mcp.config import CrankConfig, get_config
from crank_mcp.core.cache import CacheTier, ResponseCache, classify_tool
from crank_mcp.core.logging_config import tool_context

logger = logging.getLogger(__name__)

__all__ = [
    "CrankMcpClient",
    "McpClientError",
    "NotConnectedError",
    "ToolCallError",
    "build_server_parameters",
    "to_wsl_path",
]

# Tools that rebuild server-side state wholesale
CACHE_RESET_TOOLS = frozenset({"refresh_index", "init_semantic"})

# Bypass-tier tools that only read
FRESH_READ_TOOLS = frozenset({"search"})

# Argument names that carry a vault path affected by a mutation
MUTATION_PATH_ARGS = ("path", "old_path", "new_path", "destination")


class McpClientError(Exception):
    """Base error for MCP client failures."""


class NotConnectedError(McpClientError):
    """Raised when a tool is called before connect()."""

    def __init__(self) -> None:
        super().__init__("MCP client not connected")


class ToolCallError(McpClientError):
    """Raised when a tool reports an error or returns an unusable payload."""

    def __init__(self, tool: str, message: str):
        super().__init__(message)
        self.tool = tool


def to_wsl_path(win_path: str) -> str:
    """Convert ``C:\\Users\\me`` to ``/mnt/c/Users/me``."""
    converted = re.sub(
        r"^([A-Za-z]):", lambda m: f"/mnt/{m.group(1).lower()}", win_path
    )
    return converted.replace("\\", "/")


def build_server_parameters(
    config: CrankConfig, platform: Optional[str] = None
) -> StdioServerParameters:
    """Work out how to launch the indexing server.

    - No server path: run the npm package through npx.
    - Unix server path on Windows: run it inside WSL; WSL does not forward
      custom env vars, so they are inlined into the shell command.
    - Otherwise: run the server path with node.
    """
    platform = platform or sys.platform
    is_windows = platform == "win32"
    server = config.server
    server_env = config.server_env()

    if server.server_path:
        if is_windows and server.server_path.startswith("/"):
            wsl_vault = to_wsl_path(server.vault_path)
            inline_env = " ".join(
                f'{name}="{wsl_vault if name == "VAULT_PATH" else value}"'
                for name, value in server_env.items()
            )
            command = "wsl"
            args = ["bash", "-c", f'{inline_env} exec node "{server.server_path}"']
        else:
            command = "node"
            args = [server.server_path]
    else:
        command = "npx.cmd" if is_windows else "npx"
        args = ["-y", server.package]

    return StdioServerParameters(
        command=command,
        args=args,
        env={**os.environ, **server_env},
    )


class CrankMcpClient:
    """Cached MCP client for the vault indexing server."""

    def __init__(
        self,
        config: Optional[CrankConfig] = None,
        *,
        cache: Optional[ResponseCache] = None,
        session: Optional[ClientSession] = None,
    ):
        """Initialize the client.

        Args:
            config: Configuration (defaults to the global config)
            cache: Response cache (defaults to one built from config)
            session: Pre-established session; skips process spawning
        """
        self.config = config or get_config()
        self.cache = cache or ResponseCache.from_config(self.config.cache)
        self._session = session
        self._stack: Optional[AsyncExitStack] = None

    @property
    def connected(self) -> bool:
        return self._session is not None

    async def __aenter__(self) -> "CrankMcpClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    async def connect(self) -> None:
        """Spawn the indexing server and complete the MCP handshake."""
        if self._session is not None:
            return

        params = build_server_parameters(self.config)
        logger.info(
            "Spawning indexing server: %s %s", params.command, " ".join(params.args)
        )

        stack = AsyncExitStack()
        try:
            read, write = await stack.enter_async_context(stdio_client(params))
            session = await stack.enter_async_context(
                ClientSession(
                    read,
                    write,
                    client_info=Implementation(
                        name=self.config.client_name,
                        version=self.config.client_version,
                    ),
                )
            )
            # The server builds its index before answering the handshake,
            # which can take well over a minute on large vaults.
            await asyncio.wait_for(
                session.initialize(), timeout=self.config.server.connect_timeout
            )
        except asyncio.TimeoutError as exc:
            await stack.aclose()
            raise McpClientError(
                f"Timed out after {self.config.server.connect_timeout}s "
                "waiting for the indexing server handshake"
            ) from exc
        except OSError as exc:
            await stack.aclose()
            raise McpClientError(f"Failed to start indexing server: {exc}") from exc
        except BaseException:
            await stack.aclose()
            raise

        self._stack = stack
        self._session = session
        logger.info("MCP client connected")

    async def disconnect(self) -> None:
        """Close the session and stop the server process."""
        if self._session is None:
            return

        stack, self._stack = self._stack, None
        self._session = None
        self.cache.clear()
        if stack is not None:
            try:
                await stack.aclose()
            except Exception as exc:
                logger.warning("Error while closing MCP session: %s", exc)
        logger.info("MCP client disconnected")

    def _require_session(self) -> ClientSession:
        if self._session is None:
            raise NotConnectedError()
        return self._session

    # -------------------------------------------------------------------------
    # Tool invocation
    # -------------------------------------------------------------------------

    async def _invoke(
        self, name: str, arguments: Dict[str, Any], timeout: Optional[float]
    ) -> Any:
        """Call a tool on the server and decode its JSON text response."""
        session = self._require_session()
        result = await session.call_tool(
            name,
            arguments,
            read_timeout_seconds=timedelta(seconds=timeout) if timeout else None,
        )

        text = None
        for block in result.content or []:
            if getattr(block, "type", None) == "text" and getattr(block, "text", None):
                text = block.text
                break
        if not text:
            raise ToolCallError(name, f"No text response from tool {name}")

        # e.g. the index is still building
        if result.isError:
            raise ToolCallError(name, text)

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise ToolCallError(name, f"Invalid JSON from tool {name}: {exc}") from exc

    async def call_tool(
        self,
        name: str,
        arguments: Optional[Mapping[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Any:
        """Call a tool through the response cache.

        Args:
            name: Tool name
            arguments: Tool arguments
            timeout: Per-call timeout in seconds (defaults to config)

        Returns:
            Decoded JSON payload

        Raises:
            NotConnectedError: If connect() has not been called
            ToolCallError: If the tool reports an error
        """
        self._require_session()
        args = dict(arguments or {})
        effective_timeout = timeout
        if effective_timeout is None and self.config.server.call_timeout > 0:
            effective_timeout = self.config.server.call_timeout

        with tool_context(name):
            result = await self.cache.get(
                name, args, lambda: self._invoke(name, args, effective_timeout)
            )
            self._invalidate_after(name, args)
        return result

    def _invalidate_after(self, name: str, args: Mapping[str, Any]) -> None:
        if name in CACHE_RESET_TOOLS:
            self.cache.clear()
            return

        if (
            name in FRESH_READ_TOOLS
            or classify_tool(name, self.cache.tiers) is not CacheTier.BYPASS
        ):
            return

        for arg in MUTATION_PATH_ARGS:
            value = args.get(arg)
            if isinstance(value, str) and value:
                self.cache.invalidate_path(value)

    # -------------------------------------------------------------------------
    # Typed helpers
    # -------------------------------------------------------------------------

    async def search(self, query: str, limit: int = 20) -> Dict[str, Any]:
        """Unified search: FTS5 keyword + semantic hybrid."""
        return await self.call_tool(
            "search", {"query": query, "scope": "all", "limit": limit}
        )

    async def find_similar(self, path: str, limit: int = 10) -> Dict[str, Any]:
        """Find notes similar to a given note."""
        return await self.call_tool(
            "find_similar", {"path": path, "limit": limit, "exclude_linked": True}
        )

    async def get_backlinks(self, path: str) -> Dict[str, Any]:
        return await self.call_tool(
            "get_backlinks", {"path": path, "include_context": True, "limit": 50}
        )

    async def get_forward_links(self, path: str) -> Dict[str, Any]:
        return await self.call_tool("get_forward_links", {"path": path})

    async def health_check(self) -> Dict[str, Any]:
        """Get note counts, config and index status."""
        return await self.call_tool("health_check", {})

    async def schema_overview(self) -> Dict[str, Any]:
        return await self.call_tool("vault_schema", {"analysis": "overview"})

    async def folder_conventions(self, folder: str) -> Dict[str, Any]:
        """Get inferred frontmatter conventions for a folder."""
        return await self.call_tool(
            "vault_schema",
            {"analysis": "conventions", "folder": folder, "min_confidence": 0.2},
        )

    async def schema_inconsistencies(self) -> Dict[str, Any]:
        """Find frontmatter fields with inconsistent types."""
        return await self.call_tool("vault_schema", {"analysis": "inconsistencies"})

    async def vault_stats(self) -> Dict[str, Any]:
        return await self.call_tool("get_vault_stats", {})

    async def suggest_wikilinks(self, text: str, detail: bool = False) -> Dict[str, Any]:
        return await self.call_tool(
            "suggest_wikilinks", {"text": text, "limit": 30, "detail": detail}
        )

    async def folder_structure(self) -> Dict[str, Any]:
        return await self.call_tool("get_folder_structure", {})

    async def init_semantic(self, force: bool = False) -> Dict[str, Any]:
        """Build note and entity embeddings; can take several minutes."""
        return await self.call_tool("init_semantic", {"force": force}, timeout=600.0)

    async def refresh_index(self) -> Dict[str, Any]:
        """Trigger a full index rebuild on the server."""
        return await self.call_tool("refresh_index", {})

    async def wait_for_index(
        self, timeout: float = 60.0, poll_interval: float = 2.0
    ) -> None:
        """Poll health_check until the server reports a ready index.

        Raises:
            McpClientError: If the index is not ready within ``timeout``
        """
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            # health_check is cached; a stale "building" answer would stall us
            self.cache.invalidate_tool("health_check")
            try:
                health = await self.health_check()
                state = health.get("index_state")
                if state == "ready":
                    return
                logger.info("Index state: %s, waiting...", state)
            except NotConnectedError:
                raise
            except Exception as exc:
                # health_check itself may fail during early startup
                logger.debug("health_check failed while waiting for index: %s", exc)
            await asyncio.sleep(poll_interval)

        raise McpClientError("Timed out waiting for index")
