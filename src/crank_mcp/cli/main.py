"""crank CLI entry point.

JSON-only output; logs go to stderr.
"""

import click

from crank_mcp.cli.config import create_context
from crank_mcp.cli.registry import register_all_commands


@click.group()
@click.option(
    "--config",
    "config_file",
    envvar="CRANK_MCP_CONFIG_FILE",
    type=click.Path(exists=False, dir_okay=False),
    help="Path to a crank-mcp.toml file",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Override the configured log level",
)
@click.option("--vault", "vault_path", help="Vault root for the indexing server")
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: str | None,
    log_level: str | None,
    vault_path: str | None,
) -> None:
    """crank - protected-zone scanning, wikilinking and cached MCP tool calls.

    All commands output JSON.
    """
    ctx.ensure_object(dict)
    ctx.obj["cli_context"] = create_context(
        config_file=config_file, log_level=log_level, vault_path=vault_path
    )


register_all_commands(cli)


if __name__ == "__main__":
    cli()
