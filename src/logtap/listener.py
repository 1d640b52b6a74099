"""Relay listener bootstrap.

Binds the relay on the first free candidate port and serves a FastAPI
WebSocket endpoint at RELAY_PATH with uvicorn:

    Attempting(port) -> Listening            bind succeeded, stop here
    Attempting(port) -> Failed(port) -> next bind raised OSError
    all ports Failed -> BootstrapExhausted   BootstrapExhaustedError

Each accepted connection is wrapped in a WebSocketViewer, greeted (when
its path and remote address are known) and attached to the hub.
"""

from __future__ import annotations

__all__ = [
    "RelayListener",
    "WebSocketViewer",
    "bind_first_available",
    "bind_socket",
    "build_welcome_event",
    "create_relay_app",
    "start_with_retry",
]

import asyncio
import contextlib
import logging
import socket
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Callable

import uvicorn
from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from logtap.constants import (
    APP_NAME,
    DEFAULT_RELAY_HOST,
    RELAY_LISTEN_BACKLOG,
    RELAY_PATH,
    RELAY_SHUTDOWN_TIMEOUT_SECONDS,
)
from logtap.exceptions import BootstrapExhaustedError, MalformedControlEnvelopeError
from logtap.hub import ConnectionHub
from logtap.log_config import log_event
from logtap.models import RelaySystemEvent, WelcomeData, WelcomeEvent

_logger = logging.getLogger(f"{APP_NAME}.listener")

BindFn = Callable[[str, int], socket.socket]


# =============================================================================
# Viewer transport
# =============================================================================


class WebSocketViewer:
    """Hub viewer backed by a FastAPI WebSocket.

    send() only enqueues onto the connection's event loop, so it is safe
    to call from any thread (log calls happen wherever the application
    runs). pump() drains the queue in order.
    """

    def __init__(self, websocket: WebSocket, loop: asyncio.AbstractEventLoop) -> None:
        self._websocket = websocket
        self._loop = loop
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()

    def send(self, payload: str) -> None:
        if self._loop.is_closed():
            raise ConnectionError("Viewer event loop is closed")
        self._loop.call_soon_threadsafe(self._queue.put_nowait, payload)

    async def pump(self) -> None:
        """Write queued payloads until stop() or the socket goes away."""
        while True:
            payload = await self._queue.get()
            if payload is None:
                return
            try:
                await self._websocket.send_text(payload)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                _logger.debug(f"Viewer send stopped: {type(e).__name__}: {e}")
                return

    def stop(self) -> None:
        """Ask pump() to finish after the payloads already queued."""
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._queue.put_nowait, None)


def build_welcome_event(path: str | None, remote_address: str | None) -> WelcomeEvent | None:
    """Build the greeting for a new connection.

    Returns:
        The WelcomeEvent, or None when path or remote address is missing.
    """
    if not path or not remote_address:
        return None
    return WelcomeEvent(path=path, data=WelcomeData(path=path, remoteAddress=remote_address))


async def _relay_endpoint(websocket: WebSocket) -> None:
    """Serve one viewer connection for its whole lifetime."""
    hub: ConnectionHub = websocket.app.state.hub
    await websocket.accept()

    viewer = WebSocketViewer(websocket, asyncio.get_running_loop())
    remote_address = websocket.client.host if websocket.client else None

    # Queued before attach so it precedes any relayed log line
    welcome = build_welcome_event(websocket.url.path, remote_address)
    if welcome is not None:
        viewer.send(welcome.model_dump_json())

    pump = asyncio.create_task(viewer.pump())
    hub.attach(viewer)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            try:
                hub.handle_message(raw)
            except MalformedControlEnvelopeError as e:
                log_event(
                    logging.WARNING,
                    RelaySystemEvent(
                        event="control_message_malformed",
                        message=str(e),
                        remote_address=remote_address,
                        details={"payload": e.raw},
                    ),
                    _logger,
                )
    finally:
        hub.detach(viewer)
        viewer.stop()
        try:
            await asyncio.wait_for(pump, timeout=RELAY_SHUTDOWN_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            pass  # wait_for already cancelled the pump


def create_relay_app(hub: ConnectionHub) -> FastAPI:
    """Create the FastAPI application serving the relay endpoint.

    Args:
        hub: Connection hub that accepted viewers are attached to.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="logtap relay",
        description="Live log relay for attached viewers",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.hub = hub
    app.add_api_websocket_route(RELAY_PATH, _relay_endpoint)
    return app


# =============================================================================
# Bootstrap
# =============================================================================


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind and listen on host:port.

    Raises:
        OSError: If the port is unavailable (EADDRINUSE, EACCES, ...).
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
        sock.listen(RELAY_LISTEN_BACKLOG)
    except OSError:
        sock.close()
        raise
    sock.setblocking(False)
    return sock


def bind_first_available(
    ports: Iterable[int],
    host: str = DEFAULT_RELAY_HOST,
    bind: BindFn = bind_socket,
) -> tuple[int, socket.socket]:
    """Bind the first candidate port that is free.

    Tries ports strictly in order and stops at the first success.

    Args:
        ports: Candidate ports, in priority order.
        host: Interface to bind.
        bind: Socket binder (injectable for tests).

    Returns:
        (port, bound socket).

    Raises:
        BootstrapExhaustedError: If every candidate failed.
    """
    attempted: list[int] = []
    for port in ports:
        attempted.append(port)
        try:
            sock = bind(host, port)
        except OSError as e:
            log_event(
                logging.WARNING,
                RelaySystemEvent(
                    event="relay_bind_failed",
                    message=f"Failed to start log relay on port {port} - {e}. Retrying ...",
                    host=host,
                    port=port,
                    error_type=type(e).__name__,
                    error_message=str(e),
                ),
                _logger,
            )
            continue
        return port, sock

    raise BootstrapExhaustedError(attempted)


class _RelayServer(uvicorn.Server):
    """uvicorn server that leaves the host process's signal handlers alone."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        pass


def _report_serve_failure(port: int) -> Callable[[asyncio.Future[None]], None]:
    """Done-callback logging a serve task that ended with an exception."""

    def report(task: asyncio.Future[None]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        log_event(
            logging.ERROR,
            RelaySystemEvent(
                event="relay_serve_failed",
                message=f"Log relay on port {port} stopped serving: {error}",
                port=port,
                error_type=type(error).__name__,
                error_message=str(error),
            ),
            _logger,
        )

    return report


@dataclass
class RelayListener:
    """A running relay endpoint.

    Attributes:
        host: Bound interface.
        port: Bound port.
        server: uvicorn server serving the relay app.
        task: Background task running the server.
        sock: The listening socket.
    """

    host: str
    port: int
    server: uvicorn.Server
    task: asyncio.Task[None]
    sock: socket.socket

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}{RELAY_PATH}"

    async def close(self) -> None:
        """Stop serving and release the socket."""
        self.server.should_exit = True
        try:
            await asyncio.wait_for(self.task, timeout=RELAY_SHUTDOWN_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            log_event(
                logging.WARNING,
                RelaySystemEvent(
                    event="relay_shutdown_timeout",
                    message="Relay shutdown timed out, cancelling",
                    port=self.port,
                ),
                _logger,
            )
        except asyncio.CancelledError:
            pass
        except Exception:
            pass  # Already logged as relay_serve_failed by the done-callback
        finally:
            try:
                self.sock.close()
            except OSError:
                pass  # Non-critical cleanup

        log_event(
            logging.INFO,
            RelaySystemEvent(event="relay_stopped", message="Log relay stopped", port=self.port),
            _logger,
        )


async def start_with_retry(
    hub: ConnectionHub,
    ports: Iterable[int],
    host: str = DEFAULT_RELAY_HOST,
    bind: BindFn = bind_socket,
) -> RelayListener:
    """Start the relay on the first candidate port that binds.

    Args:
        hub: Connection hub for accepted viewers.
        ports: Candidate ports, in priority order.
        host: Interface to bind.
        bind: Socket binder (injectable for tests).

    Returns:
        The running RelayListener.

    Raises:
        BootstrapExhaustedError: If no candidate port could be bound.
    """
    port, sock = bind_first_available(ports, host, bind)

    config = uvicorn.Config(
        create_relay_app(hub),
        log_config=None,
        lifespan="off",
        ws="auto",
    )
    server = _RelayServer(config)
    task = asyncio.create_task(server.serve(sockets=[sock]))
    task.add_done_callback(_report_serve_failure(port))

    listener = RelayListener(host=host, port=port, server=server, task=task, sock=sock)
    log_event(
        logging.INFO,
        RelaySystemEvent(
            event="relay_started",
            message=f"Successfully started log relay on {listener.url}",
            host=host,
            port=port,
        ),
        _logger,
    )
    return listener
