"""
Configuration for crank-mcp.

Supports configuration via:
1. Environment variables (highest priority)
2. TOML config file (crank-mcp.toml)
3. Default values (lowest priority)

Environment variables:
- CRANK_MCP_CONFIG_FILE: Path to TOML config file
- CRANK_MCP_VAULT_PATH: Vault root handed to the indexing server
- CRANK_MCP_SERVER_PATH: Server entry point (empty = run the npm package via npx)
- CRANK_MCP_CONNECT_TIMEOUT: Seconds to wait for the MCP handshake
- CRANK_MCP_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
- CRANK_MCP_STRUCTURED_LOGGING: JSON log lines (true/false)
- CRANK_MCP_CACHE_ENABLED: Enable the response cache (true/false)
- CRANK_MCP_CACHE_MAX_ENTRIES: Upper bound on cached entries
- CRANK_MCP_CACHE_SHORT_TTL: Seconds for the short tier
- CRANK_MCP_CACHE_MEDIUM_TTL: Seconds for the medium tier

Example crank-mcp.toml:

    [server]
    vault_path = "/home/me/vault"
    connect_timeout = 120

    [cache]
    short_ttl = 5
    medium_ttl = 30
    max_entries = 2000

    [cache.tiers]
    my_custom_report = "medium"

    [linking]
    first_occurrence_only = true
"""

import logging
import os
from dataclasses import dataclass, field
from importlib.metadata import PackageNotFoundError, version as get_package_version
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # Python < 3.11 fallback

from crank_mcp.core.cache import CacheTier

logger = logging.getLogger(__name__)


def _get_version() -> str:
    try:
        return get_package_version("crank-mcp")
    except PackageNotFoundError:
        return "0.1.0"  # Fallback for dev without install


_PACKAGE_VERSION = _get_version()

DEFAULT_SERVER_PACKAGE = "@velvetmonkey/flywheel-memory"
DEFAULT_SERVER_TOOLS = "search,backlinks,schema,health,wikilinks"


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


@dataclass
class ServerLaunchConfig:
    """How to start and reach the indexing server.

    Attributes:
        vault_path: Vault root passed to the server as VAULT_PATH
        server_path: Node entry point; empty runs ``package`` via npx
        package: npm package used when no server_path is set
        tools: Tool groups the server should expose (FLYWHEEL_TOOLS)
        watch: Ask the server to watch the vault for changes
        connect_timeout: Seconds allowed for the MCP handshake
        call_timeout: Default per-call timeout in seconds (0 = none)
    """

    vault_path: str = ""
    server_path: str = ""
    package: str = DEFAULT_SERVER_PACKAGE
    tools: str = DEFAULT_SERVER_TOOLS
    watch: bool = True
    connect_timeout: float = 120.0
    call_timeout: float = 0.0

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "ServerLaunchConfig":
        return cls(
            vault_path=str(data.get("vault_path", "")),
            server_path=str(data.get("server_path", "")),
            package=str(data.get("package", DEFAULT_SERVER_PACKAGE)),
            tools=str(data.get("tools", DEFAULT_SERVER_TOOLS)),
            watch=_parse_bool(data.get("watch", True)),
            connect_timeout=float(data.get("connect_timeout", 120.0)),
            call_timeout=float(data.get("call_timeout", 0.0)),
        )


@dataclass
class CacheConfig:
    """Response cache settings.

    Attributes:
        enabled: When False every tool bypasses the cache
        short_ttl: Seconds for the short tier
        medium_ttl: Seconds for the medium tier
        max_entries: Optional bound on stored entries (None = unbounded)
        tier_overrides: Extra or replacement tool tier assignments
    """

    enabled: bool = True
    short_ttl: float = 5.0
    medium_ttl: float = 30.0
    max_entries: Optional[int] = 5000
    tier_overrides: Dict[str, CacheTier] = field(default_factory=dict)

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "CacheConfig":
        max_entries = data.get("max_entries", 5000)
        overrides: Dict[str, CacheTier] = {}
        for tool, tier in (data.get("tiers") or {}).items():
            try:
                overrides[str(tool)] = CacheTier(str(tier).lower())
            except ValueError:
                logger.warning(f"Ignoring unknown cache tier {tier!r} for {tool}")

        return cls(
            enabled=_parse_bool(data.get("enabled", True)),
            short_ttl=float(data.get("short_ttl", 5.0)),
            medium_ttl=float(data.get("medium_ttl", 30.0)),
            max_entries=int(max_entries) if max_entries else None,
            tier_overrides=overrides,
        )


@dataclass
class LinkingConfig:
    """Defaults for wikilink insertion."""

    first_occurrence_only: bool = True
    case_insensitive: bool = True

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "LinkingConfig":
        return cls(
            first_occurrence_only=_parse_bool(data.get("first_occurrence_only", True)),
            case_insensitive=_parse_bool(data.get("case_insensitive", True)),
        )


@dataclass
class CrankConfig:
    """Top-level configuration with env var and TOML overrides."""

    # Logging configuration
    log_level: str = "INFO"
    structured_logging: bool = True

    # Client identity announced during the MCP handshake
    client_name: str = "crank-mcp"
    client_version: str = field(default_factory=lambda: _PACKAGE_VERSION)

    server: ServerLaunchConfig = field(default_factory=ServerLaunchConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    linking: LinkingConfig = field(default_factory=LinkingConfig)

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "CrankConfig":
        """
        Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables
        2. TOML config file
        3. Default values
        """
        config = cls()

        toml_path = config_file or os.environ.get("CRANK_MCP_CONFIG_FILE")
        if toml_path:
            config._load_toml(Path(toml_path))
        else:
            for default_path in ["crank-mcp.toml", ".crank-mcp.toml"]:
                if Path(default_path).exists():
                    config._load_toml(Path(default_path))
                    break

        config._load_env()
        return config

    def _load_toml(self, path: Path) -> None:
        """Load configuration from TOML file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if "logging" in data:
                log = data["logging"]
                if "level" in log:
                    self.log_level = str(log["level"]).upper()
                if "structured" in log:
                    self.structured_logging = _parse_bool(log["structured"])

            if "client" in data:
                client = data["client"]
                if "name" in client:
                    self.client_name = str(client["name"])
                if "version" in client:
                    self.client_version = str(client["version"])

            if "server" in data:
                self.server = ServerLaunchConfig.from_toml_dict(data["server"])

            if "cache" in data:
                self.cache = CacheConfig.from_toml_dict(data["cache"])

            if "linking" in data:
                self.linking = LinkingConfig.from_toml_dict(data["linking"])

        except Exception as e:
            logger.error(f"Error loading config file {path}: {e}")

    def _load_env(self) -> None:
        """Load configuration from environment variables."""
        if level := os.environ.get("CRANK_MCP_LOG_LEVEL"):
            self.log_level = level.upper()
        if structured := os.environ.get("CRANK_MCP_STRUCTURED_LOGGING"):
            self.structured_logging = _parse_bool(structured)

        if vault := os.environ.get("CRANK_MCP_VAULT_PATH"):
            self.server.vault_path = vault
        if server_path := os.environ.get("CRANK_MCP_SERVER_PATH"):
            self.server.server_path = server_path
        if connect_timeout := os.environ.get("CRANK_MCP_CONNECT_TIMEOUT"):
            try:
                self.server.connect_timeout = float(connect_timeout)
            except ValueError:
                pass

        if cache_enabled := os.environ.get("CRANK_MCP_CACHE_ENABLED"):
            self.cache.enabled = _parse_bool(cache_enabled)
        if max_entries := os.environ.get("CRANK_MCP_CACHE_MAX_ENTRIES"):
            try:
                self.cache.max_entries = int(max_entries) or None
            except ValueError:
                pass
        if short_ttl := os.environ.get("CRANK_MCP_CACHE_SHORT_TTL"):
            try:
                self.cache.short_ttl = float(short_ttl)
            except ValueError:
                pass
        if medium_ttl := os.environ.get("CRANK_MCP_CACHE_MEDIUM_TTL"):
            try:
                self.cache.medium_ttl = float(medium_ttl)
            except ValueError:
                pass

    def server_env(self) -> Dict[str, str]:
        """Environment variables the indexing server reads at startup."""
        return {
            "VAULT_PATH": self.server.vault_path,
            "FLYWHEEL_TOOLS": self.server.tools,
            "FLYWHEEL_WATCH": "true" if self.server.watch else "false",
        }

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        from crank_mcp.core.logging_config import configure_logging

        configure_logging(
            level=self.log_level,
            format="structured" if self.structured_logging else "human",
        )


# Global configuration instance
_config: Optional[CrankConfig] = None


def get_config() -> CrankConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = CrankConfig.from_env()
    return _config


def set_config(config: CrankConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
