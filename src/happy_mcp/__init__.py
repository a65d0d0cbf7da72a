"""Per-session local MCP gateway exposing the ``change_title`` tool."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .config import Settings
    from .http import GatewayHandle
    from .session import SessionClient


async def start_gateway(
    client: SessionClient,
    *,
    settings: Optional[Settings] = None,
    logger: Any = None,
) -> GatewayHandle:
    """Lazily import the HTTP stack and start a gateway for ``client``."""
    from .http import start_gateway as _start_gateway
    return await _start_gateway(client, settings=settings, logger=logger)


__all__ = ["start_gateway"]
