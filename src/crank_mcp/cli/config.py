"""CLI configuration.

Resolves the effective configuration for a command from the shared
crank_mcp.config module plus command-line overrides.
"""

from typing import Optional

from crank_mcp.config import CrankConfig


class CLIContext:
    """CLI execution context with resolved configuration."""

    def __init__(
        self,
        config_file: Optional[str] = None,
        log_level: Optional[str] = None,
        vault_path: Optional[str] = None,
    ):
        """Initialize CLI context.

        Args:
            config_file: Explicit TOML path from --config.
            log_level: Log level override from --log-level.
            vault_path: Vault root override from --vault.
        """
        self._config = CrankConfig.from_env(config_file)
        if log_level:
            self._config.log_level = log_level.upper()
        if vault_path:
            self._config.server.vault_path = vault_path

    @property
    def config(self) -> CrankConfig:
        return self._config


def create_context(
    config_file: Optional[str] = None,
    log_level: Optional[str] = None,
    vault_path: Optional[str] = None,
) -> CLIContext:
    """Create a CLI context and configure logging from it."""
    ctx = CLIContext(config_file=config_file, log_level=log_level, vault_path=vault_path)
    ctx.config.setup_logging()
    return ctx
