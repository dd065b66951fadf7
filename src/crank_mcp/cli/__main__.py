"""Enables running the CLI via: python -m crank_mcp.cli"""

from crank_mcp.cli.main import cli

if __name__ == "__main__":
    cli()
