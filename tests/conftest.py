from __future__ import annotations

import pytest

from happy_mcp.config import clear_settings_cache
from tests.clients import RecordingSessionClient


@pytest.fixture
def isolated_env(monkeypatch):
    """Provide deterministic settings for tests and reset caches."""
    monkeypatch.setenv("APP_ENVIRONMENT", "test")
    monkeypatch.setenv("HAPPY_MCP_HTTP_PORT", "0")
    monkeypatch.setenv("LOG_RICH_ENABLED", "false")
    monkeypatch.setenv("TOOLS_LOG_ENABLED", "false")
    monkeypatch.setenv("HTTP_REQUEST_LOG_ENABLED", "false")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    clear_settings_cache()
    try:
        yield
    finally:
        clear_settings_cache()


@pytest.fixture
def fixed_hostname(monkeypatch):
    """Pin the host name used in title prefixes."""
    monkeypatch.setattr("socket.gethostname", lambda: "myhost")
    return "myhost"


@pytest.fixture
def session_client() -> RecordingSessionClient:
    return RecordingSessionClient()
