# =============================================================================
# PadLink Python Client -- Session
# =============================================================================
#
# Self-healing session over one channel to the device-control server:
# connection state machine, backoff reconnection, command buffering while
# offline, and subscription resync on every open.
#
# Every channel attempt gets an epoch number. Channel callbacks and stagger
# timers carry the epoch they were created for and are dropped once a newer
# attempt has started.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict, deque
from functools import partial
from typing import Any, Callable, Iterable

from ._logging import logger
from .command_queue import CommandQueue
from .commands import (
    Command,
    StartSensorStream,
    StopSensorStream,
    Subscribe,
    Unsubscribe,
)
from .constants import OPEN_WAIT_TIMEOUT, SEND_STAGGER, STREAM_STOPPED_MARKER
from .errors import PadLinkProtocolError
from .protocol import MessageCodec
from .reconnect import CallLater, ReconnectScheduler, TimerHandle
from .subscriptions import SubscriptionRegistry
from .transport import (
    Channel,
    ChannelFactory,
    ChannelHandlers,
    websocket_channel_factory,
)
from .types import (
    ConnectionState,
    EventType,
    Notice,
    NoticeLevel,
    ProfilesSnapshot,
    ReconnectConfig,
    ResponseType,
    ServerMessage,
    SessionStats,
    StreamStatus,
)

Handler = Callable[..., Any]

_NOTICE_LOG_LEVELS = {
    NoticeLevel.INFO: logging.INFO,
    NoticeLevel.WARNING: logging.WARNING,
    NoticeLevel.ERROR: logging.ERROR,
}

_LIVE_STATES = frozenset({ConnectionState.CONNECTING, ConnectionState.OPEN})


class Session:
    """Persistent client session to a device-control server.

    All methods are synchronous and must be called from the thread running
    the event loop. Completion is reported through the ``on_*`` handlers.

    Args:
        url: Server URL, e.g. ``"ws://pad.local:3000/ws"``.
        reconnect: Backoff delays and retry budget.
        event_types: Event types to subscribe to on every open. Defaults to
            all of them.
        send_stagger: Seconds between consecutive sends when flushing queued
            commands. ``0`` sends the whole batch at once.
        auto_start_stream: Send ``StartSensorStream`` on every open.
        extra_headers: Additional HTTP headers for the WebSocket handshake.
        channel_factory: ``factory(url, handlers) -> Channel``. Defaults to
            a :class:`~padlink_client.transport.WebSocketChannel` factory.
        call_later: Timer function with ``loop.call_later`` semantics.
            Defaults to the running event loop.

    Example::

        async with Session("ws://pad.local:3000/ws") as session:

            @session.on_sensor_stream
            def show(msg):
                print(msg.sensor_values)

            session.submit(ChangeProfile("Expert"))
    """

    def __init__(
        self,
        url: str,
        *,
        reconnect: ReconnectConfig | None = None,
        event_types: list[EventType | str] | None = None,
        send_stagger: float = SEND_STAGGER,
        auto_start_stream: bool = True,
        extra_headers: dict[str, str] | None = None,
        channel_factory: ChannelFactory | None = None,
        call_later: CallLater | None = None,
    ) -> None:
        self._url = url
        self._send_stagger = send_stagger
        self._auto_start_stream = auto_start_stream
        self._call_later_fn = call_later
        self._channel_factory = channel_factory or websocket_channel_factory(
            extra_headers
        )

        # Services
        self._codec = MessageCodec()
        self._queue = CommandQueue()
        self._registry = SubscriptionRegistry(event_types)
        self._scheduler = ReconnectScheduler(
            reconnect or ReconnectConfig(), self._call_later
        )

        # State
        self._state = ConnectionState.DISCONNECTED
        self._channel: Channel | None = None
        self._epoch = 0
        self._outbox: deque[Command] = deque()
        self._auto_start: StartSensorStream | None = None
        self._flush_handle: TimerHandle | None = None
        self._open_event = asyncio.Event()

        # Last server state seen, for change detection
        self._profiles: ProfilesSnapshot | None = None
        self._current_player: str | None = None
        self._stream_status = StreamStatus.INACTIVE

        self._stats = SessionStats()
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._background_tasks: set[asyncio.Task[Any]] = set()

    # -- Context manager ------------------------------------------------------

    async def __aenter__(self) -> Session:
        self.connect()
        if not await self.wait_open(OPEN_WAIT_TIMEOUT):
            logger.warning(
                "Session not open within %.0fs, proceeding anyway", OPEN_WAIT_TIMEOUT
            )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.close()

    async def wait_open(self, timeout: float | None = None) -> bool:
        """Wait until the session is OPEN. Returns False on timeout."""
        try:
            await asyncio.wait_for(self._open_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    # -- Properties -----------------------------------------------------------

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ConnectionState:
        return self._state

    def connection_state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == ConnectionState.OPEN

    @property
    def reconnect_attempt(self) -> int:
        return self._scheduler.attempt

    @property
    def queue_size(self) -> int:
        """Commands waiting for the next open (excludes an in-progress flush)."""
        return self._queue.size

    @property
    def subscriptions(self) -> list[EventType]:
        return self._registry.desired()

    @property
    def profiles(self) -> ProfilesSnapshot | None:
        return self._profiles

    @property
    def current_player(self) -> str | None:
        return self._current_player

    @property
    def stream_status(self) -> StreamStatus:
        return self._stream_status

    # -- Connect / Disconnect -------------------------------------------------

    def connect(self) -> bool:
        """Start connecting.

        Returns True if a connection attempt was started. A request made
        while a reconnect is scheduled or in flight, or after retries are
        exhausted, is rejected with a warning notice. One made during a first
        connect or while open is ignored.
        """
        # A retry is either waiting on its timer or its channel is opening
        if self._state == ConnectionState.RECONNECTING or (
            self._state == ConnectionState.CONNECTING and self._scheduler.attempt
        ):
            self._notice(
                NoticeLevel.WARNING,
                "Connection attempt blocked - already reconnecting",
            )
            return False
        if self._state == ConnectionState.FAILED:
            self._notice(
                NoticeLevel.WARNING,
                "Connection attempt blocked - retries exhausted, use manual reconnect",
            )
            return False
        if self._state in _LIVE_STATES:
            logger.debug("connect() ignored: already %s", self._state.value)
            return False

        self._open_channel()
        return True

    def manual_reconnect(self) -> None:
        """Drop any current attempt and reconnect now with a fresh retry budget."""
        self._notice(NoticeLevel.INFO, "Manual reconnection initiated")
        self._scheduler.reset()
        self._teardown_channel()
        self._open_channel()

    def close(self) -> None:
        """Close the channel and stop retrying.

        Queued commands are kept and sent after the next successful open.
        """
        self._scheduler.cancel()
        self._teardown_channel()
        self._stats.connected_since = None
        self._set_stream_status(StreamStatus.INACTIVE)
        self._set_state(ConnectionState.DISCONNECTED)

    # -- Submit ---------------------------------------------------------------

    def submit(self, command: Command) -> bool:
        """Send a command now, or queue it until the channel opens.

        Never blocks. Returns True if the command goes out on the current
        connection, False if it was queued for a later one.
        """
        if not isinstance(command, Command):
            raise TypeError(f"Expected a Command, got {type(command).__name__}")

        if isinstance(command, Subscribe):
            self._registry.add(command.event_types)
        elif isinstance(command, Unsubscribe):
            self._registry.discard(command.event_types)

        if self._state == ConnectionState.OPEN:
            if isinstance(command, StopSensorStream):
                self._set_stream_status(StreamStatus.STOPPED)
            elif isinstance(command, StartSensorStream):
                if self._stream_status != StreamStatus.ACTIVE:
                    self._set_stream_status(StreamStatus.WAITING)

            # A staggered flush is still running: keep call order behind it
            if self._outbox or self._flush_handle is not None:
                self._outbox.append(command)
                return True
            if self._send_frame(command):
                return True
            self._requeue([command])
            self._notice(NoticeLevel.WARNING, "Send failed - command kept for retry")
            return False

        self._queue.enqueue(command)
        self._notice(NoticeLevel.INFO, "Command queued - waiting for connection...")
        return False

    # -- Handler registration -------------------------------------------------

    def on_sensor_stream(self, fn: Handler) -> Handler:
        """Register a handler for frames carrying ``sensor_values``."""
        return self._register("sensor_stream", fn)

    def on_profiles_changed(self, fn: Handler) -> Handler:
        """Register a handler for frames whose profiles snapshot changed."""
        return self._register("profiles_changed", fn)

    def on_presence_changed(self, fn: Handler) -> Handler:
        """Register a handler for active-player broadcasts naming a new player."""
        return self._register("presence_changed", fn)

    def on_message(self, fn: Handler) -> Handler:
        """Register a handler receiving every decoded :class:`ServerMessage`."""
        return self._register("message", fn)

    def on_malformed_frame(self, fn: Handler) -> Handler:
        """Register ``fn(raw_frame, error)`` for frames that failed to decode."""
        return self._register("malformed_frame", fn)

    def on_state_change(self, fn: Handler) -> Handler:
        return self._register("state_change", fn)

    def on_stream_status(self, fn: Handler) -> Handler:
        return self._register("stream_status", fn)

    def on_notice(self, fn: Handler) -> Handler:
        """Register a handler for human-readable :class:`Notice` status lines."""
        return self._register("notice", fn)

    def off(self, event: str, fn: Handler) -> None:
        """Remove a handler registered for *event* (e.g. ``"sensor_stream"``)."""
        handlers = self._handlers.get(event, [])
        if fn in handlers:
            handlers.remove(fn)

    def _register(self, event: str, fn: Handler) -> Handler:
        self._handlers[event].append(fn)
        return fn

    # -- Stats ----------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "epoch": self._epoch,
            "stream_status": self._stream_status.value,
            "frames_received": self._stats.frames_received,
            "frames_sent": self._stats.frames_sent,
            "malformed_frames": self._stats.malformed_frames,
            "reconnect_count": self._stats.reconnect_count,
            "stale_callbacks": self._stats.stale_callbacks,
            "connected_since": self._stats.connected_since,
            "reconnect": self._scheduler.get_stats(),
            "command_queue": self._queue.get_stats(),
            "subscriptions": self._registry.get_stats(),
        }

    # -- Internal: channel lifecycle ------------------------------------------

    def _open_channel(self) -> None:
        self._epoch += 1
        epoch = self._epoch
        handlers = ChannelHandlers(
            on_open=partial(self._handle_open, epoch),
            on_message=partial(self._handle_message, epoch),
            on_close=partial(self._handle_close, epoch),
            on_error=partial(self._handle_error, epoch),
        )
        self._set_state(ConnectionState.CONNECTING)
        self._notice(NoticeLevel.INFO, "Creating new connection...")

        channel = self._channel_factory(self._url, handlers)
        self._channel = channel
        try:
            channel.open()
        except Exception as exc:
            self._notice(NoticeLevel.ERROR, f"Failed to create connection: {exc}")
            if epoch == self._epoch:
                self._transport_down()

    def _teardown_channel(self) -> None:
        """Invalidate the current attempt and close its channel.

        Commands of an interrupted flush go back to the head of the queue.
        """
        self._cancel_flush()
        if self._outbox:
            self._requeue(self._outbox)
            self._outbox.clear()
        self._epoch += 1
        channel = self._channel
        self._channel = None
        if channel is not None:
            try:
                channel.close()
            except Exception as exc:
                logger.debug("Error closing channel: %s", exc)

    def _is_stale(self, epoch: int, what: str) -> bool:
        if epoch == self._epoch:
            return False
        self._stats.stale_callbacks += 1
        logger.debug(
            "Ignoring stale %s (epoch %d, current %d)", what, epoch, self._epoch
        )
        return True

    def _handle_open(self, epoch: int) -> None:
        if self._is_stale(epoch, "open"):
            return
        if self._state != ConnectionState.CONNECTING:
            logger.debug("Open signal in state %s ignored", self._state.value)
            return

        self._scheduler.reset()
        self._stats.connected_since = time.monotonic()
        self._set_state(ConnectionState.OPEN)
        self._set_stream_status(StreamStatus.WAITING)
        self._notice(NoticeLevel.INFO, "Connected to server")

        pending = self._queue.drain()
        queued = len(pending)
        self._auto_start = None
        if self._auto_start_stream and not any(
            isinstance(c, StartSensorStream) for c in pending
        ):
            self._auto_start = StartSensorStream()
            pending.append(self._auto_start)

        for command in self._resync_commands():
            if not self._send_frame(command):
                self._requeue(pending)
                return
        desired = ", ".join(t.value for t in self._registry.desired())
        self._notice(NoticeLevel.INFO, f"Synced subscriptions: {desired}")

        if queued:
            self._notice(NoticeLevel.INFO, f"Processing {queued} queued commands...")
        self._outbox.extend(pending)
        self._pump_outbox(epoch)

    def _resync_commands(self) -> list[Command]:
        """Subscribe to the desired set and drop defaults the client does not want."""
        commands: list[Command] = [Subscribe(self._registry.desired())]
        unwanted = [t for t in EventType if t not in self._registry]
        if unwanted:
            commands.append(Unsubscribe(unwanted))
        return commands

    def _handle_close(self, epoch: int, code: int | None, reason: str) -> None:
        if self._is_stale(epoch, "close"):
            return
        logger.debug("Channel closed: code=%s reason=%s", code, reason)
        self._notice(NoticeLevel.WARNING, "Disconnected from server")
        self._transport_down()

    def _handle_error(self, epoch: int, exc: BaseException) -> None:
        if self._is_stale(epoch, "error"):
            return
        self._notice(NoticeLevel.ERROR, f"Connection error: {exc}")
        self._transport_down()

    def _transport_down(self) -> None:
        """React to the current channel failing: schedule a retry or give up."""
        if self._state not in _LIVE_STATES:
            return

        self._teardown_channel()
        self._stats.connected_since = None
        self._set_stream_status(StreamStatus.INACTIVE)

        delay = self._scheduler.schedule(self._reconnect_now)
        if delay is None:
            self._set_state(ConnectionState.FAILED)
            self._notice(
                NoticeLevel.ERROR,
                f"Connection failed after {self._scheduler.max_attempts} "
                "reconnect attempts",
            )
            return

        self._stats.reconnect_count += 1
        self._set_state(ConnectionState.RECONNECTING)
        self._notice(
            NoticeLevel.INFO,
            f"Attempting to reconnect in {delay:.2f}s "
            f"({self._scheduler.attempt}/{self._scheduler.max_attempts})",
        )

    def _reconnect_now(self) -> None:
        if self._state != ConnectionState.RECONNECTING:
            return
        self._notice(NoticeLevel.INFO, "Reconnecting to server...")
        self._open_channel()

    # -- Internal: sending ----------------------------------------------------

    def _send_frame(self, command: Command) -> bool:
        channel = self._channel
        if channel is None:
            return False
        try:
            channel.send(self._codec.encode(command))
        except Exception as exc:
            logger.warning("Send of %s failed: %s", command.TAG, exc)
            return False
        self._stats.frames_sent += 1
        logger.debug("Sent %s", command.TAG)
        return True

    def _pump_outbox(self, epoch: int) -> None:
        """Send queued commands one at a time, ``send_stagger`` apart."""
        self._flush_handle = None
        if self._is_stale(epoch, "flush") or self._state != ConnectionState.OPEN:
            return

        while self._outbox:
            command = self._outbox.popleft()
            if not self._send_frame(command):
                self._requeue([command, *self._outbox])
                self._outbox.clear()
                logger.warning(
                    "Queue flush interrupted, %d commands kept for next open",
                    self._queue.size,
                )
                return
            if self._outbox and self._send_stagger > 0:
                self._flush_handle = self._call_later(
                    self._send_stagger, self._pump_outbox, epoch
                )
                return

    def _requeue(self, commands: Iterable[Command]) -> None:
        """Return unsent commands to the queue head, minus the automatic stream start.

        The next open appends a fresh one after whatever is queued by then.
        """
        auto = self._auto_start
        self._queue.restore(c for c in commands if c is not auto)

    def _cancel_flush(self) -> None:
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None

    def _call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> TimerHandle:
        if self._call_later_fn is not None:
            return self._call_later_fn(delay, callback, *args)
        return asyncio.get_running_loop().call_later(delay, callback, *args)

    # -- Internal: inbound ----------------------------------------------------

    def _handle_message(self, epoch: int, data: str | bytes) -> None:
        if self._is_stale(epoch, "message"):
            return
        self._stats.frames_received += 1

        try:
            message = self._codec.decode(data)
        except PadLinkProtocolError as exc:
            self._stats.malformed_frames += 1
            self._emit("malformed_frame", data, exc)
            self._notice(NoticeLevel.WARNING, f"Malformed message dropped: {exc}")
            return

        self._dispatch(message)

    def _dispatch(self, message: ServerMessage) -> None:
        """Route a decoded frame: ack parsing, then exactly one payload handler."""
        self._emit("message", message)

        if SubscriptionRegistry.is_ack(message.message):
            self._registry.apply(message.message)

        response_type = message.response_type
        if (
            response_type == ResponseType.SENSOR_STREAM
            and message.sensor_values is not None
        ):
            self._set_stream_status(StreamStatus.ACTIVE)
        elif (
            response_type == ResponseType.STREAM_STOPPED
            or STREAM_STOPPED_MARKER in message.message.lower()
        ):
            self._set_stream_status(StreamStatus.STOPPED)

        if response_type == ResponseType.ACTIVE_PLAYER_BROADCAST:
            player = message.data.current_player if message.data else ""
            if player != self._current_player:
                self._current_player = player
                self._emit("presence_changed", message)
        elif message.sensor_values is not None:
            self._emit("sensor_stream", message)
        elif message.data is not None and message.data != self._profiles:
            self._profiles = message.data
            self._emit("profiles_changed", message)

    # -- Internal: state + events ---------------------------------------------

    def _set_state(self, new_state: ConnectionState) -> None:
        if new_state == self._state:
            return
        old = self._state
        self._state = new_state
        if new_state == ConnectionState.OPEN:
            self._open_event.set()
        else:
            self._open_event.clear()
        logger.debug("State: %s -> %s", old.value, new_state.value)
        self._emit("state_change", new_state)

    def _set_stream_status(self, status: StreamStatus) -> None:
        if status == self._stream_status:
            return
        self._stream_status = status
        self._emit("stream_status", status)

    def _notice(self, level: NoticeLevel, text: str) -> None:
        logger.log(_NOTICE_LOG_LEVELS[level], text)
        self._emit("notice", Notice(level, text))

    def _emit(self, event: str, *args: Any) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                result = handler(*args)
                if asyncio.iscoroutine(result):
                    self._fire_task(result)
            except Exception as exc:
                logger.error("Handler error for '%s': %s", event, exc)

    def _fire_task(self, coro: Any) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
