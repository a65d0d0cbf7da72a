"""Session client boundary: the connection that delivers messages to a chat session."""

from __future__ import annotations

import inspect
from typing import Any, Protocol, runtime_checkable

from . import rich_logger


@runtime_checkable
class SessionClient(Protocol):
    """A live connection to one remote chat session.

    ``send_claude_session_message`` may deliver synchronously or return an
    awaitable; the gateway handles both.
    """

    session_id: str

    def send_claude_session_message(self, message: dict[str, Any]) -> Any: ...


async def deliver_message(client: SessionClient, message: dict[str, Any]) -> None:
    """Send ``message`` and wait until the client accepted or rejected it."""
    outcome = client.send_claude_session_message(message)
    if inspect.isawaitable(outcome):
        await outcome


class ConsoleSessionClient:
    """Session client that keeps delivered messages and echoes them to the console.

    Used by ``happy-mcp serve`` when no remote session is attached.
    """

    def __init__(self, session_id: str, *, echo: bool = True) -> None:
        self.session_id = session_id
        self.echo = echo
        self.messages: list[dict[str, Any]] = []

    def send_claude_session_message(self, message: dict[str, Any]) -> None:
        self.messages.append(dict(message))
        if self.echo:
            rich_logger.log_summary_message(self.session_id, message)
