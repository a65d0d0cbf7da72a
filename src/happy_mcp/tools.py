"""The ``change_title`` tool and the per-request FastMCP server factory."""

from __future__ import annotations

import socket
from contextlib import nullcontext
from typing import Annotated, Any, Final, Optional

import structlog
from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from pydantic import Field

from . import rich_logger
from .config import Settings, get_settings
from .models import SummaryMessage, TitleChangeResponse, TitleChangeResult
from .session import SessionClient, deliver_message

CHANGE_TITLE_TOOL: Final[str] = "change_title"
TOOL_NAMES: Final[tuple[str, ...]] = (CHANGE_TITLE_TOOL,)

CHANGE_TITLE_DESCRIPTION: Final[str] = "Change the title of the current chat session."
UNKNOWN_ERROR: Final[str] = "Unknown error"
FAILED_PREFIX: Final[str] = "Failed to change chat title:"


def format_title(title: str, hostname: Optional[str] = None) -> str:
    """Prefix ``title`` with the local host name, e.g. ``[devbox] Refactor plan``."""
    host = hostname if hostname is not None else socket.gethostname()
    return f"[{host}] {title}"


async def apply_title_change(client: SessionClient, title: str, *, logger: Any = None) -> TitleChangeResult:
    """Send the prefixed title to the session as a summary message.

    Delivery errors are captured in the returned result instead of raised.
    """
    log = logger or structlog.get_logger("happy_mcp")
    prefixed_title = format_title(title)
    log.debug("change_title", session_id=client.session_id, title=prefixed_title)
    message = SummaryMessage(summary=prefixed_title)
    try:
        await deliver_message(client, message.to_payload())
    except Exception as exc:
        log.debug("change_title_failed", session_id=client.session_id, error=str(exc))
        return TitleChangeResult(success=False, error=str(exc))
    return TitleChangeResult(success=True)


def render_title_change(title: str, result: TitleChangeResult) -> TitleChangeResponse:
    if result.success:
        return TitleChangeResponse(text=f'Successfully changed chat title to: "{title}"', is_error=False)
    return TitleChangeResponse(text=f"{FAILED_PREFIX} {result.error or UNKNOWN_ERROR}", is_error=True)


def build_mcp_server(
    client: SessionClient,
    *,
    settings: Optional[Settings] = None,
    logger: Any = None,
) -> FastMCP:
    """Create a fresh FastMCP server with ``change_title`` registered.

    Called once per HTTP request; instances are never shared between requests.
    """
    settings = settings or get_settings()
    log = logger or structlog.get_logger("happy_mcp")

    mcp = FastMCP(name=settings.server_name, version=settings.server_version)

    @mcp.tool(name=CHANGE_TITLE_TOOL, title="Change Chat Title", description=CHANGE_TITLE_DESCRIPTION)
    async def change_title(
        title: Annotated[str, Field(description="The new title for the chat session")],
    ) -> str:
        tool_log = (
            rich_logger.tool_call_logger(CHANGE_TITLE_TOOL, kwargs={"title": title}, session_id=client.session_id)
            if settings.tools_log_enabled
            else nullcontext()
        )
        with tool_log as ctx:
            result = await apply_title_change(client, title, logger=log)
            response = render_title_change(title, result)
            log.debug("change_title_response", success=result.success, error=result.error)
            if response.is_error:
                raise ToolError(response.text)
            if ctx is not None:
                ctx.result = response.text
            return response.text

    return mcp
