"""Loopback HTTP gateway wrapping a per-request FastMCP server with FastAPI."""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import socket
import time
from collections.abc import Callable, Generator, MutableMapping
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastmcp import FastMCP
from mcp.server.streamable_http import StreamableHTTPServerTransport
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import Receive, Scope, Send

from .config import Settings, get_settings
from .session import SessionClient
from .tools import TOOL_NAMES, build_mcp_server

__all__ = [
    "GatewayHandle",
    "GatewayStartError",
    "StatelessMCPASGIApp",
    "build_http_app",
    "start_gateway",
]

ServerFactory = Callable[[], FastMCP]

_LOGGING_CONFIGURED = False


class GatewayStartError(RuntimeError):
    """The HTTP server exited before its listener reported started."""


def _configure_logging(settings: Settings) -> None:
    """Initialize structlog and stdlib logging formatting."""
    # Idempotent setup
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
    ]
    if settings.log_json_enabled:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.processors.KeyValueRenderer(key_order=["event", "session_id"]))
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(level=level)

    # "Terminating session: None" is routine for stateless requests
    logging.getLogger("mcp.server.streamable_http").setLevel(logging.WARNING)
    logging.getLogger("mcp.server.lowlevel.server").setLevel(logging.WARNING)

    _LOGGING_CONFIGURED = True


class StatelessMCPASGIApp:
    """ASGI app that answers every HTTP request with a fresh MCP server and transport.

    Nothing MCP-related outlives a single request: the server factory and the
    Streamable HTTP transport are both invoked anew each time.
    """

    def __init__(self, server_factory: ServerFactory, *, logger: Any = None) -> None:
        self._server_factory = server_factory
        self._logger = logger or structlog.get_logger("happy_mcp")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            res = JSONResponse({"detail": "Not Found"}, status_code=404)
            await res(scope, receive, send)
            return

        response_started = False

        async def _send(message: MutableMapping[str, Any]) -> None:
            nonlocal response_started
            if message.get("type") == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self._handle(scope, receive, _send)
        except Exception as exc:
            self._logger.debug("request_error", error=str(exc), error_type=type(exc).__name__)
            if not response_started:
                await send({"type": "http.response.start", "status": 500, "headers": []})
                await send({"type": "http.response.body", "body": b""})

    async def _handle(self, scope: Scope, receive: Receive, send: Send) -> None:
        # Ensure Accept and Content-Type headers are present per StreamableHTTP expectations
        headers = list(scope.get("headers") or [])

        def _has_header(key: bytes) -> bool:
            lk = key.lower()
            return any(h[0].lower() == lk for h in headers)

        # httpx and curl send no JSON/SSE Accept header by default
        headers = [(k, v) for (k, v) in headers if k.lower() != b"accept"]
        headers.append((b"accept", b"application/json, text/event-stream"))
        if scope.get("method") == "POST" and not _has_header(b"content-type"):
            headers.append((b"content-type", b"application/json"))
        new_scope = dict(scope)
        new_scope["headers"] = headers

        server = self._server_factory()
        http_transport = StreamableHTTPServerTransport(
            mcp_session_id=None,
            is_json_response_enabled=True,
            event_store=None,
            security_settings=None,
        )

        async with http_transport.connect() as streams:
            read_stream, write_stream = streams
            server_task = asyncio.create_task(
                server._mcp_server.run(
                    read_stream,
                    write_stream,
                    server._mcp_server.create_initialization_options(),
                    stateless=True,
                )
            )
            try:
                await http_transport.handle_request(new_scope, receive, send)
            finally:
                with contextlib.suppress(Exception):
                    await http_transport.terminate()
                if not server_task.done():
                    server_task.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await server_task


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: Any, logger: Any) -> None:
        super().__init__(app)
        self._logger = logger

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        start = time.time()
        response = await call_next(request)
        self._logger.info(
            "request",
            method=request.method,
            path=request.url.path,
            status=getattr(response, "status_code", 0),
            duration_ms=int((time.time() - start) * 1000),
        )
        return response


def build_http_app(settings: Settings, server_factory: ServerFactory, *, logger: Any = None) -> FastAPI:
    log = logger or structlog.get_logger("happy_mcp")
    fastapi_app = FastAPI(openapi_url=None, docs_url=None, redoc_url=None)

    if settings.http.request_log_enabled:
        fastapi_app.add_middleware(RequestLoggingMiddleware, logger=log)

    @fastapi_app.get("/health/liveness")
    async def liveness() -> JSONResponse:
        return JSONResponse({"status": "alive"})

    # Every other path and method belongs to the MCP endpoint
    fastapi_app.mount("/", StatelessMCPASGIApp(server_factory, logger=log))
    return fastapi_app


def _uvicorn_log_level(level: str) -> str:
    normalized = level.strip().lower()
    if normalized in {"critical", "error", "warning", "info", "debug", "trace"}:
        return normalized
    return "info"


class _GatewayServer(uvicorn.Server):
    """uvicorn server that leaves the host process's signal handlers alone."""

    @contextlib.contextmanager
    def capture_signals(self) -> Generator[None, None, None]:
        yield


def _close_listeners(server: Optional[uvicorn.Server], sock: socket.socket) -> None:
    # Closing the asyncio listeners and the socket frees the port immediately
    if server is not None:
        server.should_exit = True
        for listener in server.servers:
            listener.close()
    sock.close()


@dataclass
class GatewayHandle:
    """A running gateway: its base URL, exposed tools and teardown action."""

    url: str
    tool_names: tuple[str, ...]
    stop: Callable[[], None]
    _task: Optional[asyncio.Task[Any]] = field(default=None, repr=False)

    async def wait_stopped(self) -> None:
        """Wait for the server task to finish shutting down after ``stop``."""
        if self._task is not None:
            await asyncio.wait({self._task})


async def start_gateway(
    client: SessionClient,
    *,
    settings: Optional[Settings] = None,
    logger: Any = None,
) -> GatewayHandle:
    """Start a loopback MCP server exposing ``change_title`` for ``client``.

    Returns once the listener is bound. Bind errors propagate unchanged.
    """
    settings = settings or get_settings()
    _configure_logging(settings)
    log = logger or structlog.get_logger("happy_mcp")
    log.debug("server_start", session_id=client.session_id)

    sock = socket.create_server((settings.http.host, settings.http.port))
    port = sock.getsockname()[1]
    server: Optional[_GatewayServer] = None
    task: Optional[asyncio.Task[Any]] = None

    try:
        server_factory = functools.partial(build_mcp_server, client, settings=settings, logger=log)
        app = build_http_app(settings, server_factory, logger=log)
        config = uvicorn.Config(
            app,
            log_config=None,
            log_level=_uvicorn_log_level(settings.log_level),
            access_log=False,
            lifespan="off",
            ws="none",
            timeout_graceful_shutdown=5,
        )
        server = _GatewayServer(config)
        task = asyncio.create_task(server.serve(sockets=[sock]))

        while not server.started:
            if task.done():
                if task.cancelled():
                    raise GatewayStartError("gateway server was cancelled during startup")
                raise GatewayStartError("gateway server exited before it started listening") from task.exception()
            await asyncio.sleep(0.01)
    except BaseException:
        log.debug("server_start_aborted", session_id=client.session_id)
        _close_listeners(server, sock)
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
        raise

    url = f"http://{settings.http.host}:{port}"
    log.debug("server_ready", session_id=client.session_id, url=url)

    def stop() -> None:
        log.debug("server_stop", session_id=client.session_id)
        _close_listeners(server, sock)

    return GatewayHandle(url=url, tool_names=TOOL_NAMES, stop=stop, _task=task)
