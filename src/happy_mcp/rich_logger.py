"""Rich-based console logging for gateway tool calls and session events.

Panels are printed to stderr so that a host process driving the gateway over
stdout is never disturbed.
"""

from __future__ import annotations

import io
import time
from collections.abc import Generator, Sequence
from contextlib import contextmanager, suppress
from dataclasses import dataclass, field
from typing import Any, Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table

console = Console(stderr=True, soft_wrap=True)


@dataclass
class ToolCallContext:
    """One ``change_title`` invocation as seen by the console log."""

    tool_name: str
    kwargs: dict[str, Any]
    session_id: Optional[str] = None
    started: float = field(default_factory=time.perf_counter)
    end_time: Optional[float] = None
    result: Any = None
    error: Optional[Exception] = None
    success: bool = True
    rendered_panel: Optional[str] = None

    @property
    def elapsed_ms(self) -> float:
        return ((self.end_time or time.perf_counter()) - self.started) * 1000


def _call_table(ctx: ToolCallContext) -> Table:
    table = Table(show_header=False, box=box.SIMPLE, padding=(0, 1), show_edge=False)
    table.add_column("Key", style="bold bright_yellow", width=10)
    table.add_column("Value", style="white", overflow="fold")

    table.add_row("Tool", f"[bold bright_green]{ctx.tool_name}[/bold bright_green]")
    if ctx.session_id:
        table.add_row("Session", f"[bright_magenta]{escape(ctx.session_id)}[/bright_magenta]")
    for name, value in ctx.kwargs.items():
        table.add_row(name.capitalize(), escape(str(value)))

    if ctx.end_time is not None:
        table.add_row("Elapsed", f"{ctx.elapsed_ms:.2f}ms")
        if ctx.success:
            table.add_row("Result", f"[bright_green]{escape(str(ctx.result))}[/bright_green]")
        else:
            table.add_row("Error", f"[bold red]{type(ctx.error).__name__}: {escape(str(ctx.error))}[/bold red]")
    return table


def _call_panel(ctx: ToolCallContext) -> Panel:
    if ctx.end_time is None:
        title, style = "TOOL CALL", "bright_blue"
    elif ctx.success:
        title, style = "TOOL CALL OK", "bright_green"
    else:
        title, style = "TOOL CALL FAILED", "bright_red"
    return Panel(_call_table(ctx), title=f"[bold {style}]{title}[/bold {style}]", border_style=style, box=box.ROUNDED)


def _plain_text(panel: Panel) -> str:
    buffer = io.StringIO()
    Console(file=buffer, color_system=None, width=console.width).print(panel)
    return buffer.getvalue()


@contextmanager
def tool_call_logger(
    tool_name: str,
    kwargs: dict[str, Any] | None = None,
    session_id: Optional[str] = None,
) -> Generator[ToolCallContext, None, None]:
    """Print a panel when a tool call starts and another when it ends.

    The closing panel is also kept as plain text on ``ctx.rendered_panel``.
    Rendering failures never affect the call itself.
    """
    ctx = ToolCallContext(tool_name=tool_name, kwargs=kwargs or {}, session_id=session_id)
    with suppress(Exception):
        console.print(_call_panel(ctx))

    try:
        yield ctx
    except Exception as exc:
        ctx.error = exc
        ctx.success = False
        raise
    finally:
        ctx.end_time = time.perf_counter()
        with suppress(Exception):
            panel = _call_panel(ctx)
            console.print(panel)
            ctx.rendered_panel = _plain_text(panel)


def log_summary_message(session_id: str, payload: dict[str, Any]) -> None:
    """Show a summary message delivered to a session."""
    table = Table(show_header=False, box=box.SIMPLE, padding=(0, 1), show_edge=False)
    table.add_column("Key", style="bold bright_yellow", width=10)
    table.add_column("Value", style="white", overflow="fold")
    table.add_row("Session", escape(session_id))
    table.add_row("Summary", f"[bold bright_white]{escape(str(payload.get('summary', '')))}[/bold bright_white]")
    table.add_row("Leaf", f"[dim]{escape(str(payload.get('leafUuid', '')))}[/dim]")
    console.print(
        Panel(
            table,
            title="[bold bright_cyan]Session title changed[/bold bright_cyan]",
            border_style="bright_cyan",
            box=box.ROUNDED,
            padding=(0, 1),
        )
    )


def display_startup_banner(settings: Any, url: str, tool_names: Sequence[str], session_id: str) -> None:
    """Display the gateway endpoint and configuration once it is listening."""
    server_table = Table(
        box=box.ROUNDED,
        border_style="bright_blue",
        show_header=True,
        header_style="bold bright_white on bright_blue",
        title=f"[bold bright_yellow]{escape(settings.server_name)} {escape(settings.server_version)}[/bold bright_yellow]",
        padding=(0, 1),
    )
    server_table.add_column("Setting", style="bold bright_cyan", width=16)
    server_table.add_column("Value", style="white", overflow="fold")

    server_table.add_row("Environment", f"[bold bright_green]{escape(settings.environment)}[/bold bright_green]")
    server_table.add_row("Endpoint", f"[bold bright_magenta]{escape(url)}[/bold bright_magenta]")
    server_table.add_row("Session", escape(session_id))
    server_table.add_row("Tools", escape(", ".join(tool_names)))
    server_table.add_row(
        "Tool Logging",
        "[bold bright_green]ENABLED[/bold bright_green]" if settings.tools_log_enabled else "[dim]disabled[/dim]",
    )

    console.print()
    console.print(server_table)
    console.print(Rule(style="bright_blue", characters="═"))
