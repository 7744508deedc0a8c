# =============================================================================
# PadLink Python Client -- Channel Transport
# =============================================================================
#
# A channel is one bidirectional connection attempt. It reports its lifecycle
# through callbacks and never reconnects by itself; the Session owns retries
# and creates a fresh channel for every attempt.
# =============================================================================

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Protocol

import websockets
import websockets.asyncio.client
from websockets.exceptions import ConnectionClosed, ConnectionClosedError

from ._logging import logger
from .constants import MAX_MESSAGE_SIZE, WS_CLOSE_NORMAL
from .errors import PadLinkConnectionError


@dataclass(frozen=True, slots=True)
class ChannelHandlers:
    """Callbacks a channel invokes on the event loop.

    ``on_close`` fires exactly once per opened channel, after ``on_error``
    when the close was abnormal. A failed open reports ``on_error`` then
    ``on_close`` without ``on_open``.
    """

    on_open: Callable[[], Any]
    on_message: Callable[[str | bytes], Any]
    on_close: Callable[[int | None, str], Any]
    on_error: Callable[[BaseException], Any]


class Channel(Protocol):
    def open(self) -> None: ...

    def send(self, data: str) -> None: ...

    def close(self) -> None: ...


ChannelFactory = Callable[[str, ChannelHandlers], Channel]


class WebSocketChannel:
    """:class:`Channel` on top of the ``websockets`` asyncio client.

    Args:
        url: Server URL, e.g. ``"ws://pad.local:3000/ws"``.
        handlers: Lifecycle callbacks.
        extra_headers: Additional HTTP headers for the handshake.
        max_size: Largest inbound frame accepted by the socket.
    """

    def __init__(
        self,
        url: str,
        handlers: ChannelHandlers,
        *,
        extra_headers: dict[str, str] | None = None,
        max_size: int = MAX_MESSAGE_SIZE,
    ) -> None:
        self._url = url
        self._handlers = handlers
        self._extra_headers = extra_headers or {}
        self._max_size = max_size

        self._ws: websockets.asyncio.client.ClientConnection | None = None
        self._run_task: asyncio.Task[None] | None = None
        self._closing = False
        self._background_tasks: set[asyncio.Task[Any]] = set()

    def _fire_task(self, coro: Any) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closing

    # -- Channel API ----------------------------------------------------------

    def open(self) -> None:
        """Start connecting. Returns at once; the outcome arrives via callbacks."""
        if self._run_task is not None:
            raise PadLinkConnectionError("Channel has already been opened")
        self._run_task = asyncio.ensure_future(self._run())

    def send(self, data: str) -> None:
        """Queue a text frame for sending without waiting for it."""
        if not self.is_open:
            raise PadLinkConnectionError("Channel is not open")
        self._fire_task(self._send(data))

    def close(self) -> None:
        """Close the channel. Safe to call more than once."""
        if self._closing:
            return
        self._closing = True
        if self._ws is not None:
            self._fire_task(self._ws.close(WS_CLOSE_NORMAL, "Client disconnect"))
        elif self._run_task is not None:
            # From inside _run's own on_close callback the task is already ending
            if self._run_task is not asyncio.current_task():
                self._run_task.cancel()

    # -- Internal -------------------------------------------------------------

    async def _run(self) -> None:
        try:
            ws = await websockets.asyncio.client.connect(
                self._url,
                additional_headers=self._extra_headers,
                max_size=self._max_size,
            )
        except asyncio.CancelledError:
            logger.debug("Channel open cancelled: %s", self._url)
            return
        except Exception as exc:
            logger.debug("Channel open failed: %s", exc)
            self._handlers.on_error(PadLinkConnectionError(f"Failed to connect: {exc}"))
            self._handlers.on_close(None, str(exc))
            return

        if self._closing:
            await ws.close(WS_CLOSE_NORMAL, "Client disconnect")
            return

        self._ws = ws
        logger.debug("Channel open: %s", self._url)
        self._handlers.on_open()

        try:
            async for message in ws:
                self._handlers.on_message(message)
        except ConnectionClosedError as exc:
            self._handlers.on_error(PadLinkConnectionError(f"Connection lost: {exc}"))
        except asyncio.CancelledError:
            self._ws = None
            return
        finally:
            self._ws = None

        self._handlers.on_close(ws.close_code, ws.close_reason or "")

    async def _send(self, data: str) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            await ws.send(data)
        except ConnectionClosed:
            logger.debug("Send failed: connection closed")
        except Exception as exc:
            logger.debug("Send failed: %s", exc)


def websocket_channel_factory(
    extra_headers: dict[str, str] | None = None,
) -> ChannelFactory:
    """Build a factory producing :class:`WebSocketChannel` instances."""

    def factory(url: str, handlers: ChannelHandlers) -> Channel:
        return WebSocketChannel(url, handlers, extra_headers=extra_headers)

    return factory
