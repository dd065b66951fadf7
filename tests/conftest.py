"""
Root pytest configuration and shared fixtures.
"""

import logging

import pytest

from crank_mcp.config import CrankConfig, set_config


class FakeClock:
    """Manually advanced time source for TTL tests."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def crank_config(tmp_path):
    """Config that never spawns a real server."""
    config = CrankConfig()
    config.server.vault_path = str(tmp_path / "vault")
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def note_file(tmp_path):
    """Write a markdown note and return its path."""

    def _write(content: str, name: str = "note.md"):
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        return path

    return _write




@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drop handlers installed by configure_logging during a test."""
    logger = logging.getLogger("crank_mcp")
    yield
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
