"""Command-line interface for running and poking a session gateway."""

from __future__ import annotations

import asyncio
import uuid
from contextlib import suppress
from typing import Any, Optional

import httpx
import typer
from rich.console import Console

from . import rich_logger
from .config import Settings, get_settings
from .http import start_gateway
from .session import ConsoleSessionClient
from .tools import CHANGE_TITLE_TOOL, TOOL_NAMES

console = Console()

app = typer.Typer(help="Per-session MCP gateway for changing the chat title.", invoke_without_command=True)


@app.callback()
def _app_callback(ctx: typer.Context) -> None:
    """Default to ``serve`` when no subcommand is given."""
    if ctx.invoked_subcommand is None:
        serve(session_id=None)


async def _serve_until_cancelled(client: ConsoleSessionClient, settings: Settings) -> None:
    handle = await start_gateway(client, settings=settings)
    if settings.log_rich_enabled:
        rich_logger.display_startup_banner(settings, handle.url, handle.tool_names, client.session_id)
    else:
        console.print(handle.url, markup=False, highlight=False)
    try:
        await asyncio.Event().wait()
    finally:
        handle.stop()
        await handle.wait_stopped()


@app.command("serve")
def serve(
    session_id: Optional[str] = typer.Option(None, help="Session id used to label log events. Defaults to a random id."),
) -> None:
    """Run a gateway bound to a console session client until interrupted."""
    settings = get_settings()
    client = ConsoleSessionClient(session_id or uuid.uuid4().hex, echo=settings.log_rich_enabled)
    with suppress(KeyboardInterrupt):
        asyncio.run(_serve_until_cancelled(client, settings))


def _rpc(method: str, params: dict[str, Any]) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": "1", "method": method, "params": params}


def _result_text(result: dict[str, Any]) -> str:
    blocks = result.get("content") or []
    return "\n".join(str(block.get("text", "")) for block in blocks if block.get("type") == "text")


@app.command("change-title")
def change_title(
    url: str = typer.Argument(..., help="Gateway base URL, e.g. http://127.0.0.1:51234"),
    title: str = typer.Argument(..., help="The new title for the chat session."),
    timeout: float = typer.Option(10.0, help="Request timeout in seconds."),
) -> None:
    """Call ``change_title`` on a running gateway and print the tool's reply."""
    try:
        response = httpx.post(
            url,
            json=_rpc("tools/call", {"name": CHANGE_TITLE_TOOL, "arguments": {"title": title}}),
            headers={"Accept": "application/json, text/event-stream"},
            timeout=timeout,
        )
    except httpx.HTTPError as exc:
        console.print(f"[red]Request failed:[/] {exc}", highlight=False)
        raise typer.Exit(code=1) from exc

    if response.status_code >= 400:
        console.print(f"[red]Gateway answered HTTP {response.status_code}[/]")
        raise typer.Exit(code=1)

    body = response.json()
    if "error" in body:
        message = (body.get("error") or {}).get("message", "Unknown error")
        console.print(f"[red]{message}[/]", highlight=False)
        raise typer.Exit(code=1)

    result = body.get("result") or {}
    text = _result_text(result)
    console.print(text, markup=False, highlight=False, soft_wrap=True)
    if result.get("isError"):
        raise typer.Exit(code=1)


@app.command("tools")
def list_tools() -> None:
    """List the tools a gateway exposes."""
    for name in TOOL_NAMES:
        console.print(name, markup=False, highlight=False)
