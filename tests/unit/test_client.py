"""Tests for crank_mcp.client module."""

import json
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from mcp.types import CallToolResult, TextContent

from crank_mcp.client import (
    CrankMcpClient,
    McpClientError,
    NotConnectedError,
    ToolCallError,
    build_server_parameters,
    to_wsl_path,
)


def _result(payload, is_error=False):
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=is_error)


@pytest.fixture
def session():
    fake = AsyncMock()
    fake.call_tool = AsyncMock(return_value=_result({"ok": True}))
    return fake


@pytest.fixture
def client(crank_config, session):
    return CrankMcpClient(crank_config, session=session)


# =============================================================================
# Launch parameters
# =============================================================================


class TestServerParameters:
    def test_to_wsl_path(self):
        assert to_wsl_path("C:\\Users\\me\\vault") == "/mnt/c/Users/me/vault"
        assert to_wsl_path("/already/unix") == "/already/unix"

    def test_default_runs_package_with_npx(self, crank_config):
        params = build_server_parameters(crank_config, platform="linux")
        assert params.command == "npx"
        assert params.args == ["-y", crank_config.server.package]
        assert params.env["VAULT_PATH"] == crank_config.server.vault_path
        assert params.env["FLYWHEEL_WATCH"] == "true"

    def test_windows_uses_npx_cmd(self, crank_config):
        params = build_server_parameters(crank_config, platform="win32")
        assert params.command == "npx.cmd"

    def test_server_path_runs_with_node(self, crank_config):
        crank_config.server.server_path = "/opt/server/dist/index.js"
        params = build_server_parameters(crank_config, platform="linux")
        assert params.command == "node"
        assert params.args == ["/opt/server/dist/index.js"]

    def test_unix_server_path_on_windows_runs_in_wsl(self, crank_config):
        crank_config.server.server_path = "/home/me/server/index.js"
        crank_config.server.vault_path = "C:\\Users\\me\\vault"
        params = build_server_parameters(crank_config, platform="win32")

        assert params.command == "wsl"
        assert params.args[:2] == ["bash", "-c"]
        script = params.args[2]
        assert 'VAULT_PATH="/mnt/c/Users/me/vault"' in script
        assert script.endswith('exec node "/home/me/server/index.js"')


# =============================================================================
# Tool calls
# =============================================================================


class TestCallTool:
    @pytest.mark.asyncio
    async def test_not_connected(self, crank_config):
        client = CrankMcpClient(crank_config)
        assert not client.connected
        with pytest.raises(NotConnectedError):
            await client.health_check()

    @pytest.mark.asyncio
    async def test_decodes_json_payload(self, client, session):
        session.call_tool.return_value = _result({"backlinks": ["b.md"]})

        result = await client.get_backlinks("a.md")

        assert result == {"backlinks": ["b.md"]}
        name, args = session.call_tool.call_args.args
        assert name == "get_backlinks"
        assert args == {"path": "a.md", "include_context": True, "limit": 50}

    def test_installed_sdk_matches_result_fields(self):
        # _invoke reads the 1.x field name
        assert "isError" in CallToolResult.model_fields

    @pytest.mark.asyncio
    async def test_folder_conventions_arguments(self, client, session):
        await client.folder_conventions("projects")

        name, args = session.call_tool.call_args.args
        assert name == "vault_schema"
        assert args == {"analysis": "conventions", "folder": "projects", "min_confidence": 0.2}

    @pytest.mark.asyncio
    async def test_schema_inconsistencies_arguments(self, client, session):
        await client.schema_inconsistencies()

        name, args = session.call_tool.call_args.args
        assert name == "vault_schema"
        assert args == {"analysis": "inconsistencies"}

    @pytest.mark.asyncio
    async def test_cached_tool_is_called_once(self, client, session):
        await client.get_backlinks("a.md")
        await client.get_backlinks("a.md")
        assert session.call_tool.await_count == 1

    @pytest.mark.asyncio
    async def test_search_is_never_cached(self, client, session):
        await client.search("query")
        await client.search("query")
        assert session.call_tool.await_count == 2

    @pytest.mark.asyncio
    async def test_error_result_raises(self, client, session):
        session.call_tool.return_value = _result("Index is still building", is_error=True)

        with pytest.raises(ToolCallError) as exc_info:
            await client.health_check()

        assert exc_info.value.tool == "health_check"
        assert "still building" in str(exc_info.value)
        assert len(client.cache) == 0

    @pytest.mark.asyncio
    async def test_missing_text_raises(self, client, session):
        session.call_tool.return_value = CallToolResult(content=[], isError=False)
        with pytest.raises(ToolCallError, match="No text response"):
            await client.vault_stats()

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self, client, session):
        session.call_tool.return_value = _result("not json")
        with pytest.raises(ToolCallError, match="Invalid JSON"):
            await client.vault_stats()

    @pytest.mark.asyncio
    async def test_call_timeout_from_config(self, client, session, crank_config):
        crank_config.server.call_timeout = 12.5
        await client.search("x")
        assert session.call_tool.call_args.kwargs["read_timeout_seconds"] == timedelta(
            seconds=12.5
        )

    @pytest.mark.asyncio
    async def test_no_timeout_by_default(self, client, session):
        await client.search("x")
        assert session.call_tool.call_args.kwargs["read_timeout_seconds"] is None


class TestInvalidation:
    @pytest.mark.asyncio
    async def test_mutation_invalidates_entries_for_path(self, client, session):
        await client.get_backlinks("notes/a.md")
        await client.get_backlinks("notes/b.md")

        await client.call_tool(
            "vault_update_frontmatter", {"path": "notes/a.md", "frontmatter": {}}
        )
        await client.get_backlinks("notes/a.md")
        await client.get_backlinks("notes/b.md")

        # two initial reads, the mutation, then only a.md is refetched
        assert session.call_tool.await_count == 4

    @pytest.mark.asyncio
    async def test_move_invalidates_both_paths(self, client):
        await client.get_backlinks("old.md")
        await client.get_backlinks("new.md")

        await client.call_tool(
            "vault_move_note", {"old_path": "old.md", "new_path": "new.md"}
        )
        assert len(client.cache) == 0

    @pytest.mark.asyncio
    async def test_refresh_index_clears_cache(self, client):
        await client.folder_structure()
        await client.health_check()

        await client.refresh_index()

        assert len(client.cache) == 0

    @pytest.mark.asyncio
    async def test_disconnect_clears_cache(self, client):
        await client.folder_structure()
        await client.disconnect()

        assert not client.connected
        assert len(client.cache) == 0

    @pytest.mark.asyncio
    async def test_read_with_disabled_tier_does_not_invalidate(self, crank_config, session):
        crank_config.cache.short_ttl = 0
        client = CrankMcpClient(crank_config, session=session)
        await client.call_tool("list_entities", {"path": "a.md"})

        await client.get_backlinks("a.md")

        assert len(client.cache) == 1


class TestWaitForIndex:
    @pytest.mark.asyncio
    async def test_polls_until_ready(self, client, session):
        session.call_tool.side_effect = [
            _result({"index_state": "building"}),
            _result("starting up", is_error=True),
            _result({"index_state": "ready"}),
        ]

        await client.wait_for_index(timeout=5, poll_interval=0)

        assert session.call_tool.await_count == 3

    @pytest.mark.asyncio
    async def test_times_out(self, client, session):
        session.call_tool.return_value = _result({"index_state": "building"})

        with pytest.raises(McpClientError, match="Timed out"):
            await client.wait_for_index(timeout=0.05, poll_interval=0.01)

    @pytest.mark.asyncio
    async def test_not_connected_is_raised_immediately(self, crank_config):
        client = CrankMcpClient(crank_config)
        with pytest.raises(NotConnectedError):
            await client.wait_for_index(timeout=5, poll_interval=0)
