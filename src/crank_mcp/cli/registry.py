"""Command registry for the crank CLI."""

from typing import Optional

import click

from crank_mcp.cli.config import CLIContext

# Module-level storage for CLI context (for testing)
_cli_context: Optional[CLIContext] = None


def set_context(ctx: CLIContext) -> None:
    """Set the CLI context at module level (used by tests)."""
    global _cli_context
    _cli_context = ctx


def get_context(ctx: Optional[click.Context] = None) -> CLIContext:
    """Get CLI context from Click context or module-level storage.

    Raises:
        RuntimeError: If no context is available.
    """
    if ctx is not None:
        root = ctx.find_root()
        if root.obj and "cli_context" in root.obj:
            return root.obj["cli_context"]

    if _cli_context is not None:
        return _cli_context

    raise RuntimeError("No CLI context available. Call set_context() first.")


def register_all_commands(cli: click.Group) -> None:
    """Register all command groups with the CLI.

    Command groups are imported lazily to avoid circular imports.
    """
    from crank_mcp.cli.commands import links, tools, zones

    cli.add_command(zones)
    cli.add_command(links)
    cli.add_command(tools)

    @cli.command("version")
    def version() -> None:
        """Show CLI version information."""
        from crank_mcp import __version__
        from crank_mcp.cli.output import emit_success

        emit_success({"name": "crank-mcp", "version": __version__, "json_only": True})
