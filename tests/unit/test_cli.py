"""Tests for the crank CLI commands."""

import json
import os
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner
from mcp.types import CallToolResult, TextContent

from crank_mcp.cli.main import cli
from crank_mcp.client import CrankMcpClient, McpClientError


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    for name in list(os.environ):
        if name.startswith("CRANK_MCP_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def runner():
    return CliRunner()


def _envelope(result):
    """Return the response envelope from stdout or stderr."""
    for line in reversed(result.output.splitlines()):
        line = line.strip()
        if not line.startswith("{"):
            continue
        data = json.loads(line)
        if "success" in data:
            return data
    raise AssertionError(f"No response envelope in output: {result.output!r}")


def _invoke(runner, *args):
    return runner.invoke(cli, ["--log-level", "ERROR", *args])


class TestVersion:
    def test_version(self, runner):
        result = _invoke(runner, "version")
        assert result.exit_code == 0
        envelope = _envelope(result)
        assert envelope["success"] is True
        assert envelope["data"]["name"] == "crank-mcp"
        assert envelope["meta"]["version"] == "response-v2"


class TestZonesCommands:
    def test_scan(self, runner, note_file):
        path = note_file("# Title\nUse `code` and see https://example.com\n")

        result = _invoke(runner, "zones", "scan", str(path))

        assert result.exit_code == 0
        data = _envelope(result)["data"]
        assert data["count"] == 3
        assert [z["type"] for z in data["zones"]] == ["header", "inline_code", "url"]
        assert data["counts_by_type"] == {"header": 1, "inline_code": 1, "url": 1}

    def test_scan_type_filter(self, runner, note_file):
        path = note_file("Use `code` and see https://example.com\n")

        result = _invoke(runner, "zones", "scan", str(path), "--type", "url")

        data = _envelope(result)["data"]
        assert [z["type"] for z in data["zones"]] == ["url"]

    def test_scan_request_id_in_meta(self, runner, note_file):
        result = _invoke(runner, "zones", "scan", str(note_file("plain")))
        assert _envelope(result)["meta"]["request_id"].startswith("cli_")

    def test_scan_missing_file(self, runner, tmp_path):
        result = _invoke(runner, "zones", "scan", str(tmp_path / "missing.md"))

        assert result.exit_code == 1
        envelope = _envelope(result)
        assert envelope["success"] is False
        assert envelope["data"]["error_code"] == "NOT_FOUND"

    def test_check_position(self, runner, note_file):
        path = note_file("Hello `code` world")

        inside = _envelope(_invoke(runner, "zones", "check", str(path), "7"))["data"]
        outside = _envelope(_invoke(runner, "zones", "check", str(path), "0"))["data"]

        assert inside["protected"] is True
        assert inside["zones"][0]["type"] == "inline_code"
        assert outside["protected"] is False

    def test_check_range_abutting_zone(self, runner, note_file):
        path = note_file("Hello `code` world")

        data = _envelope(_invoke(runner, "zones", "check", str(path), "0", "6"))["data"]

        assert data["overlaps"] is False

    def test_check_invalid_range(self, runner, note_file):
        path = note_file("Hello")

        result = _invoke(runner, "zones", "check", str(path), "4", "2")

        assert result.exit_code == 1
        assert _envelope(result)["data"]["error_code"] == "VALIDATION_ERROR"

    def test_frontmatter(self, runner, note_file):
        path = note_file("---\ntitle: X\n---\nBody")

        data = _envelope(_invoke(runner, "zones", "frontmatter", str(path)))["data"]

        assert data == {"file": str(path), "has_frontmatter": True, "frontmatter_end": 17}


class TestLinksCommands:
    def test_apply_preview(self, runner, note_file):
        path = note_file("I use React. React is great.")

        result = _invoke(runner, "links", "apply", str(path), "--entity", "React")

        data = _envelope(result)["data"]
        assert data["links_added"] == 1
        assert data["content"] == "I use [[React]]. React is great."
        assert data["written"] is False
        assert path.read_text() == "I use React. React is great."

    def test_apply_all_occurrences_and_write(self, runner, note_file):
        path = note_file("I use React. React is great.")

        result = _invoke(
            runner, "links", "apply", str(path), "--entity", "React",
            "--all-occurrences", "--write",
        )

        data = _envelope(result)["data"]
        assert data["links_added"] == 2
        assert data["written"] is True
        assert "content" not in data
        assert path.read_text() == "I use [[React]]. [[React]] is great."

    def test_apply_case_sensitive(self, runner, note_file):
        path = note_file("i use react")

        result = _invoke(
            runner, "links", "apply", str(path), "--entity", "React", "--case-sensitive"
        )

        assert _envelope(result)["data"]["links_added"] == 0

    def test_entities_file_with_aliases(self, runner, note_file, tmp_path):
        path = note_file("We write TS and use mcp.")
        entities = tmp_path / "entities.json"
        entities.write_text(
            json.dumps(
                [
                    {"name": "TypeScript", "path": "tech/TypeScript.md", "aliases": ["TS"]},
                    {"name": "Model Context Protocol", "aliases": ["MCP"]},
                    {"path": "no-name.md"},
                ]
            )
        )

        result = _invoke(runner, "links", "apply", str(path), "--entities-file", str(entities))

        data = _envelope(result)["data"]
        assert data["content"] == (
            "We write [[TypeScript|TS]] and use [[Model Context Protocol|mcp]]."
        )
        assert data["linked_entities"] == ["TypeScript", "Model Context Protocol"]

    def test_entities_file_must_be_list(self, runner, note_file, tmp_path):
        entities = tmp_path / "entities.json"
        entities.write_text('{"name": "React"}')

        result = _invoke(
            runner, "links", "apply", str(note_file("x")), "--entities-file", str(entities)
        )

        assert result.exit_code == 1
        assert _envelope(result)["data"]["error_code"] == "INVALID_FORMAT"

    def test_requires_entities(self, runner, note_file):
        result = _invoke(runner, "links", "apply", str(note_file("x")))

        assert result.exit_code == 1
        assert _envelope(result)["data"]["error_code"] == "VALIDATION_ERROR"

    def test_config_defaults_apply(self, runner, note_file, tmp_path):
        config = tmp_path / "crank-mcp.toml"
        config.write_text("[linking]\nfirst_occurrence_only = false\n")
        path = note_file("React and React")

        result = runner.invoke(
            cli,
            ["--config", str(config), "--log-level", "ERROR",
             "links", "apply", str(path), "--entity", "React"],
        )

        assert _envelope(result)["data"]["links_added"] == 2


class TestToolsCommands:
    def test_tier(self, runner):
        result = _invoke(runner, "tools", "tier", "get_backlinks", "search", "health_check")

        rows = {row["tool"]: row for row in _envelope(result)["data"]["tools"]}
        assert rows["get_backlinks"]["tier"] == "short"
        assert rows["get_backlinks"]["ttl_seconds"] == 5.0
        assert rows["search"]["cached"] is False
        assert rows["search"]["ttl_seconds"] is None
        assert rows["health_check"]["ttl_seconds"] == 30.0

    def test_call_invalid_args(self, runner):
        result = _invoke(runner, "tools", "call", "health_check", "--args", "{oops")

        assert result.exit_code == 1
        assert _envelope(result)["data"]["error_code"] == "VALIDATION_ERROR"

    def test_call_args_must_be_object(self, runner):
        result = _invoke(runner, "tools", "call", "health_check", "--args", "[1]")

        assert result.exit_code == 1
        assert _envelope(result)["data"]["error_code"] == "VALIDATION_ERROR"

    def test_call_through_cache(self, runner):
        session = AsyncMock()
        session.call_tool = AsyncMock(
            return_value=CallToolResult(
                content=[TextContent(type="text", text='{"backlinks": []}')],
                isError=False,
            )
        )

        async def fake_connect(self):
            self._session = session

        with patch.object(CrankMcpClient, "connect", fake_connect):
            result = _invoke(
                runner, "tools", "call", "get_backlinks",
                "--args", '{"path": "a.md"}', "--repeat", "2",
            )

        assert result.exit_code == 0
        envelope = _envelope(result)
        assert envelope["data"]["result"] == {"backlinks": []}
        assert envelope["data"]["tier"] == "short"
        assert envelope["data"]["cache"]["hits"] == 1
        assert envelope["data"]["cache"]["misses"] == 1
        assert envelope["meta"]["telemetry"]["calls"] == 2
        assert session.call_tool.await_count == 1

    def test_call_server_unavailable(self, runner):
        async def failing_connect(self):
            raise McpClientError("Failed to start indexing server: npx not found")

        with patch.object(CrankMcpClient, "connect", failing_connect):
            result = _invoke(runner, "tools", "call", "health_check")

        assert result.exit_code == 1
        envelope = _envelope(result)
        assert envelope["data"]["error_code"] == "UNAVAILABLE"
        assert "npx not found" in envelope["error"]
