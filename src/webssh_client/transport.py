"""
Transport to the SSH proxy.

The state machine only needs an event-emitting duplex channel: register
handlers, emit events fire-and-forget, open and close. SocketIOTransport
provides that over python-socketio's AsyncClient; tests use
webssh_client.testing.FakeTransport.

A transport instance serves exactly one connection attempt. close()
detaches every handler before it returns, so a superseded socket can
never deliver another event.
"""
from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Callable, Protocol, Sequence

import socketio
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from webssh_client.sftp import SFTP_EVENTS

logger = logging.getLogger(__name__)

Handler = Callable[..., None]

# Events the client listens for
SERVER_EVENTS = (
    "connect",
    "connect_error",
    "disconnect",
    "data",
    "authentication",
    "permissions",
    "ssherror",
    "updateUI",
    "getTerminal",
    "prompt",
    "connection-error",
    "sftp-status",
    *SFTP_EVENTS,
)


class Transport(Protocol):
    """Duplex event channel for one connection attempt."""

    @property
    def closed(self) -> bool: ...

    def on(self, event: str, handler: Handler) -> None: ...

    def emit(self, event: str, data: Any = None) -> None: ...

    def open(self) -> None: ...

    def close(self) -> None: ...


TransportFactory = Callable[[], Transport]


class SocketIOTransport:
    """
    Transport over a Socket.IO connection.

    Args:
        url: Server URL (scheme, host and port)
        path: Socket.IO endpoint path
        transports: Engine.IO transports to try, in order
        headers: Extra HTTP headers for the handshake (e.g. Cookie)
    """

    def __init__(
        self,
        url: str,
        path: str = "/ssh/socket.io",
        transports: Sequence[str] = ("websocket",),
        headers: dict[str, str] | None = None,
    ) -> None:
        assert url, "Transport URL must not be empty"
        self._url = url
        self._path = path.strip("/")
        self._transports = list(transports)
        self._headers = dict(headers or {})
        self._client = socketio.AsyncClient(reconnection=False)
        self._handlers: dict[str, list[Handler]] = {}
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def connected(self) -> bool:
        return self._client.connected

    def on(self, event: str, handler: Handler) -> None:
        assert not self._closed, "Cannot add handlers to a closed transport"
        if event not in self._handlers:
            self._handlers[event] = []
            self._client.on(event, functools.partial(self._dispatch, event))
        self._handlers[event].append(handler)

    def _dispatch(self, event: str, *args: Any) -> None:
        if self._closed:
            logger.debug("Dropping %s from closed transport", event)
            return
        for handler in list(self._handlers.get(event, ())):
            handler(*args)

    def _spawn(self, coro: Any, what: str) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)

        def done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.warning("Transport %s failed: %s", what, t.exception())

        task.add_done_callback(done)

    def emit(self, event: str, data: Any = None) -> None:
        if self._closed:
            logger.debug("Not emitting %s on closed transport", event)
            return
        self._spawn(self._client.emit(event, data), f"emit {event}")

    def open(self) -> None:
        assert not self._closed, "Cannot open a closed transport"
        self._spawn(self._connect(), "connect")

    async def _connect(self) -> None:
        try:
            await self._client.connect(
                self._url,
                headers=self._headers,
                transports=self._transports,
                socketio_path=self._path,
            )
        except SocketIOConnectionError as e:
            logger.info("Socket.IO connect to %s failed: %s", self._url, e)
            self._dispatch("connect_error", {"message": str(e)})

    def close(self) -> None:
        """Detach all handlers now and disconnect in the background. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._handlers.clear()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; skipping Socket.IO disconnect")
            return
        task = loop.create_task(self._client.disconnect())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_closed(self) -> None:
        """Wait for outstanding emits and the disconnect to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
