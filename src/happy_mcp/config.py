"""Application configuration loaded via python-decouple with typed helpers."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Final, Protocol, cast

from decouple import (
    Config as DecoupleConfig,
    RepositoryEmpty,
    RepositoryEnv,
)

_DOTENV_PATH: Final[Path] = Path(".env")

LOOPBACK_HOST: Final[str] = "127.0.0.1"


def _build_decouple_config() -> DecoupleConfig:
    # Gracefully handle missing .env (e.g., in CI/tests) by falling back to an empty repository.
    try:
        return DecoupleConfig(RepositoryEnv(str(_DOTENV_PATH)))
    except FileNotFoundError:
        return DecoupleConfig(RepositoryEmpty())


_decouple_config: Final[DecoupleConfig] = _build_decouple_config()


@dataclass(slots=True, frozen=True)
class HttpSettings:
    """Loopback listener settings."""

    host: str
    # 0 lets the OS pick an ephemeral port
    port: int
    request_log_enabled: bool


@dataclass(slots=True, frozen=True)
class Settings:
    """Top-level application settings."""

    environment: str
    server_name: str
    server_version: str
    http: HttpSettings
    # Logging
    log_level: str
    log_json_enabled: bool
    log_rich_enabled: bool
    # Tools logging
    tools_log_enabled: bool


def _bool(value: str, *, default: bool) -> bool:
    normalized = value.strip().lower()
    if normalized in {"1", "true", "t", "yes", "y"}:
        return True
    if normalized in {"0", "false", "f", "no", "n"}:
        return False
    return default


def _int(value: str, *, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _port(value: str) -> int:
    port = _int(value, default=0)
    if port < 0 or port > 65535:
        return 0
    return port


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""
    http_settings = HttpSettings(
        host=LOOPBACK_HOST,
        port=_port(_decouple_config("HAPPY_MCP_HTTP_PORT", default="0")),
        request_log_enabled=_bool(_decouple_config("HTTP_REQUEST_LOG_ENABLED", default="false"), default=False),
    )

    return Settings(
        environment=_decouple_config("APP_ENVIRONMENT", default="development"),
        server_name=_decouple_config("HAPPY_MCP_SERVER_NAME", default="Happy MCP").strip() or "Happy MCP",
        server_version=_decouple_config("HAPPY_MCP_SERVER_VERSION", default="1.0.0").strip() or "1.0.0",
        http=http_settings,
        log_level=_decouple_config("LOG_LEVEL", default="INFO"),
        log_json_enabled=_bool(_decouple_config("LOG_JSON_ENABLED", default="false"), default=False),
        log_rich_enabled=_bool(_decouple_config("LOG_RICH_ENABLED", default="true"), default=True),
        tools_log_enabled=_bool(_decouple_config("TOOLS_LOG_ENABLED", default="false"), default=False),
    )


class _CacheClearable(Protocol):
    def cache_clear(self) -> None: ...


def clear_settings_cache() -> None:
    """Clear the lru_cache for get_settings in a type-checker-friendly way."""
    cache_clear = getattr(cast(_CacheClearable, get_settings), "cache_clear", None)
    if callable(cache_clear):
        cache_clear()
