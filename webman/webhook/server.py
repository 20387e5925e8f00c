"""Embedded uvicorn server for the webhook app.

The server moves through STOPPED -> STARTING -> LISTENING -> STOPPING ->
STOPPED. State changes and address lookups happen under one lock, so a
shutdown or ``current_address`` call never observes a half-started server.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
import threading
from collections.abc import Iterator
from enum import Enum

import uvicorn
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

_STARTUP_POLL_SECONDS = 0.01


class ServerState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    LISTENING = "listening"
    STOPPING = "stopping"


class WebhookServerError(Exception):
    """Raised when the webhook server cannot bind, start or keep running."""


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the hosting process."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        pass


def parse_listen_addr(listen_addr: str) -> tuple[str, int]:
    """Split ``host:port``; an empty host means every interface."""
    host, sep, port_str = listen_addr.rpartition(":")
    if not sep:
        raise WebhookServerError(f"listen address {listen_addr!r} has no port")
    try:
        port = int(port_str)
    except ValueError as exc:
        raise WebhookServerError(f"invalid port in listen address {listen_addr!r}") from exc
    if not 0 <= port <= 65535:
        raise WebhookServerError(f"port {port} outside valid range 0-65535")
    return host.strip("[]") or "0.0.0.0", port  # noqa: S104 - bind all interfaces


def format_listen_addr(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def _bind(host: str, port: int) -> socket.socket:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


class WebhookServer:
    """Serves an ASGI app on a listen address until shut down."""

    def __init__(self, app: ASGIApp, listen_addr: str, log_level: str = "warning") -> None:
        self._app = app
        self._listen_addr = listen_addr
        self._log_level = log_level.lower()
        self._lock = threading.Lock()
        self._state = ServerState.STOPPED
        self._server: _EmbeddedServer | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._socket: socket.socket | None = None
        self._address = ""

    @property
    def state(self) -> ServerState:
        with self._lock:
            return self._state

    def current_address(self) -> str:
        """Bound ``host:port`` while listening, empty string otherwise."""
        with self._lock:
            if self._state is ServerState.LISTENING:
                return self._address
            return ""

    async def start(self) -> None:
        """Bind the listen address and serve until ``shutdown`` is called.

        Returns once the server accepts connections. Bind failures are raised
        as :class:`WebhookServerError`.
        """
        with self._lock:
            if self._state is not ServerState.STOPPED:
                raise WebhookServerError(f"webhook server is {self._state.value}")
            self._state = ServerState.STARTING

        try:
            host, port = parse_listen_addr(self._listen_addr)
            try:
                sock = _bind(host, port)
            except OSError as exc:
                raise WebhookServerError(f"cannot listen on {self._listen_addr}: {exc}") from exc

            config = uvicorn.Config(
                self._app,
                lifespan="off",
                access_log=False,
                log_config=None,
                log_level=self._log_level,
            )
            server = _EmbeddedServer(config)
            serve_task = asyncio.create_task(server.serve(sockets=[sock]))
            try:
                await self._wait_started(server, serve_task)
            except BaseException:
                sock.close()
                raise
        except BaseException:
            with self._lock:
                self._state = ServerState.STOPPED
            raise

        bound_host, bound_port = sock.getsockname()[:2]
        with self._lock:
            self._server = server
            self._serve_task = serve_task
            self._socket = sock
            self._address = format_listen_addr(bound_host, bound_port)
            self._state = ServerState.LISTENING
        logger.info("webhook server started at: %s", self._address)

    @staticmethod
    async def _wait_started(server: _EmbeddedServer, serve_task: asyncio.Task[None]) -> None:
        while not server.started:
            if serve_task.done():
                # re-raises whatever stopped uvicorn during startup
                serve_task.result()
                raise WebhookServerError("webhook server exited during startup")
            await asyncio.sleep(_STARTUP_POLL_SECONDS)

    async def shutdown(self, grace_period: float) -> None:
        """Stop accepting connections and give in-flight requests ``grace_period`` seconds."""
        with self._lock:
            if self._state is not ServerState.LISTENING:
                return
            self._state = ServerState.STOPPING
            server = self._server
            serve_task = self._serve_task
            sock = self._socket

        if server is None or serve_task is None:
            raise WebhookServerError("webhook server is listening without a running server")
        server.config.timeout_graceful_shutdown = max(grace_period, 0)
        server.should_exit = True
        try:
            await asyncio.shield(serve_task)
        finally:
            if sock is not None:
                sock.close()
            with self._lock:
                self._server = None
                self._serve_task = None
                self._socket = None
                self._address = ""
                self._state = ServerState.STOPPED
            logger.info("webhook server stopped")

    async def wait_closed(self) -> None:
        """Wait until the server stops serving.

        Raises :class:`WebhookServerError` if it stopped without a shutdown
        request.
        """
        with self._lock:
            serve_task = self._serve_task
        if serve_task is None:
            return
        await asyncio.shield(serve_task)
        if self.state is ServerState.LISTENING:
            raise WebhookServerError("webhook server stopped unexpectedly")
