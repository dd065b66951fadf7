"""Tests for layered config loading (defaults -> TOML -> env)."""

import os

import pytest

from crank_mcp.config import CacheConfig, CrankConfig
from crank_mcp.core.cache import CacheTier


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Run from an empty directory with no CRANK_MCP_* variables set."""
    for name in list(os.environ):
        if name.startswith("CRANK_MCP_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


class TestConfigDefaults:
    def test_defaults(self):
        config = CrankConfig.from_env()
        assert config.log_level == "INFO"
        assert config.structured_logging is True
        assert config.server.server_path == ""
        assert config.cache.enabled is True
        assert config.cache.short_ttl == 5.0
        assert config.cache.medium_ttl == 30.0
        assert config.linking.first_occurrence_only is True

    def test_server_env(self):
        config = CrankConfig()
        config.server.vault_path = "/vault"
        config.server.watch = False
        env = config.server_env()
        assert env["VAULT_PATH"] == "/vault"
        assert env["FLYWHEEL_WATCH"] == "false"
        assert "FLYWHEEL_TOOLS" in env


class TestConfigToml:
    @pytest.fixture
    def toml_content(self):
        return """
[logging]
level = "debug"
structured = false

[server]
vault_path = "/home/me/vault"
server_path = "/opt/server/index.js"
connect_timeout = 30

[cache]
short_ttl = 2
max_entries = 100

[cache.tiers]
my_report = "medium"
broken = "forever"

[linking]
first_occurrence_only = false
"""

    def test_project_file_loaded(self, tmp_path, toml_content):
        (tmp_path / "crank-mcp.toml").write_text(toml_content)

        config = CrankConfig.from_env()

        assert config.log_level == "DEBUG"
        assert config.structured_logging is False
        assert config.server.vault_path == "/home/me/vault"
        assert config.server.server_path == "/opt/server/index.js"
        assert config.server.connect_timeout == 30.0
        assert config.cache.short_ttl == 2.0
        assert config.cache.max_entries == 100
        assert config.linking.first_occurrence_only is False

    def test_unknown_tier_ignored(self, tmp_path, toml_content):
        (tmp_path / "crank-mcp.toml").write_text(toml_content)

        config = CrankConfig.from_env()

        assert config.cache.tier_overrides == {"my_report": CacheTier.MEDIUM}

    def test_explicit_path(self, tmp_path, toml_content):
        path = tmp_path / "custom.toml"
        path.write_text(toml_content)

        config = CrankConfig.from_env(str(path))

        assert config.server.vault_path == "/home/me/vault"

    def test_config_file_env_var(self, tmp_path, toml_content, monkeypatch):
        path = tmp_path / "from-env.toml"
        path.write_text(toml_content)
        monkeypatch.setenv("CRANK_MCP_CONFIG_FILE", str(path))

        assert CrankConfig.from_env().log_level == "DEBUG"

    def test_missing_file_keeps_defaults(self, tmp_path):
        config = CrankConfig.from_env(str(tmp_path / "missing.toml"))
        assert config.log_level == "INFO"

    def test_invalid_toml_keeps_defaults(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[server\nvault_path = ")

        config = CrankConfig.from_env(str(path))

        assert config.server.vault_path == ""

    def test_zero_max_entries_means_unbounded(self):
        assert CacheConfig.from_toml_dict({"max_entries": 0}).max_entries is None


class TestConfigEnv:
    def test_env_overrides_toml(self, tmp_path, monkeypatch):
        (tmp_path / "crank-mcp.toml").write_text(
            '[server]\nvault_path = "/from/toml"\n[logging]\nlevel = "ERROR"\n'
        )
        monkeypatch.setenv("CRANK_MCP_VAULT_PATH", "/from/env")
        monkeypatch.setenv("CRANK_MCP_LOG_LEVEL", "warning")

        config = CrankConfig.from_env()

        assert config.server.vault_path == "/from/env"
        assert config.log_level == "WARNING"

    def test_cache_env_vars(self, monkeypatch):
        monkeypatch.setenv("CRANK_MCP_CACHE_ENABLED", "false")
        monkeypatch.setenv("CRANK_MCP_CACHE_MAX_ENTRIES", "50")
        monkeypatch.setenv("CRANK_MCP_CACHE_SHORT_TTL", "1.5")
        monkeypatch.setenv("CRANK_MCP_CACHE_MEDIUM_TTL", "60")

        config = CrankConfig.from_env()

        assert config.cache.enabled is False
        assert config.cache.max_entries == 50
        assert config.cache.short_ttl == 1.5
        assert config.cache.medium_ttl == 60.0

    def test_invalid_numbers_ignored(self, monkeypatch):
        monkeypatch.setenv("CRANK_MCP_CONNECT_TIMEOUT", "soon")
        monkeypatch.setenv("CRANK_MCP_CACHE_SHORT_TTL", "fast")

        config = CrankConfig.from_env()

        assert config.server.connect_timeout == 120.0
        assert config.cache.short_ttl == 5.0
