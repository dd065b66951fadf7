"""Remote tool commands: tier lookup and cached calls to the indexing server."""

import asyncio
import json
import time
from typing import Any, Dict, Optional, Tuple

import click

from crank_mcp.cli.logging import cli_command
from crank_mcp.cli.output import emit_error, emit_success
from crank_mcp.cli.registry import get_context
from crank_mcp.client import CrankMcpClient, McpClientError, NotConnectedError, ToolCallError
from crank_mcp.core.cache import CacheTier, ResponseCache


@click.group("tools")
def tools() -> None:
    """Indexing server tools and their cache tiers."""
    pass


@tools.command("tier")
@click.argument("names", nargs=-1, required=True)
@click.pass_context
@cli_command("tools-tier")
def tools_tier_cmd(ctx: click.Context, names: Tuple[str, ...]) -> None:
    """Show the cache tier and TTL that apply to each tool NAME."""
    cache = ResponseCache.from_config(get_context(ctx).config.cache)

    rows = []
    for name in names:
        tier = cache.classify(name)
        rows.append(
            {
                "tool": name,
                "tier": tier.value,
                "cached": tier is not CacheTier.BYPASS,
                "ttl_seconds": None if tier is CacheTier.BYPASS else cache.ttls.get(tier, 0.0),
            }
        )
    emit_success({"tools": rows, "cache_enabled": cache.enabled})


async def _call(
    client: CrankMcpClient, name: str, args: Dict[str, Any], repeat: int
) -> Tuple[Any, float]:
    start = time.perf_counter()
    async with client:
        result = None
        for _ in range(repeat):
            result = await client.call_tool(name, args)
    return result, (time.perf_counter() - start) * 1000


@tools.command("call")
@click.argument("name")
@click.option("--args", "args_json", default="{}", help="Tool arguments as a JSON object.")
@click.option(
    "--repeat",
    type=click.IntRange(min=1),
    default=1,
    help="Call the tool this many times in one session (shows cache behaviour).",
)
@click.pass_context
@cli_command("tools-call")
def tools_call_cmd(ctx: click.Context, name: str, args_json: str, repeat: int) -> None:
    """Call tool NAME on the indexing server through the response cache."""
    try:
        args: Optional[Dict[str, Any]] = json.loads(args_json)
    except json.JSONDecodeError as exc:
        emit_error(
            f"--args is not valid JSON: {exc}",
            code="VALIDATION_ERROR",
            error_type="validation",
        )
    if not isinstance(args, dict):
        emit_error("--args must be a JSON object", code="VALIDATION_ERROR", error_type="validation")

    client = CrankMcpClient(get_context(ctx).config)
    try:
        result, duration_ms = asyncio.run(_call(client, name, args, repeat))
    except ToolCallError as exc:
        emit_error(str(exc), code="TOOL_ERROR", error_type="internal", details={"tool": exc.tool})
    except NotConnectedError as exc:
        emit_error(str(exc), code="NOT_CONNECTED", error_type="unavailable")
    except McpClientError as exc:
        emit_error(
            str(exc),
            code="UNAVAILABLE",
            error_type="unavailable",
            remediation="Check the server path and vault path settings",
        )

    emit_success(
        {
            "tool": name,
            "tier": client.cache.classify(name).value,
            "result": result,
            "cache": client.cache.get_stats(),
        },
        telemetry={"duration_ms": round(duration_ms, 2), "calls": repeat},
    )
