"""PadLink Python client: a self-healing session to a sensor-pad control server.

Async usage::

    from padlink_client import connect, ChangeProfile

    async with connect("ws://pad.local:3000/ws") as session:

        @session.on_sensor_stream
        def show(msg):
            print(msg.sensor_values)

        session.submit(ChangeProfile("Expert"))
        await asyncio.sleep(60)

Commands submitted while the connection is down are queued and sent, in
order, as soon as it comes back.
"""

from ._version import __version__
from .command_queue import CommandQueue
from .commands import (
    AddProfile,
    ChangePlayer,
    ChangeProfile,
    Command,
    GetCurrentThresholds,
    GetSensorValues,
    RemoveProfile,
    SetDefaultProfile,
    StartSensorStream,
    StopSensorStream,
    Subscribe,
    Unsubscribe,
    UpdateThreshold,
)
from .errors import (
    PadLinkCommandError,
    PadLinkConnectionError,
    PadLinkError,
    PadLinkProtocolError,
)
from .protocol import MessageCodec
from .reconnect import ReconnectScheduler
from .session import Session
from .subscriptions import SubscriptionRegistry
from .transport import Channel, ChannelHandlers, WebSocketChannel
from .types import (
    ConnectionState,
    EventType,
    Notice,
    NoticeLevel,
    Player,
    Profile,
    ProfilesSnapshot,
    ReconnectConfig,
    ResponseType,
    ServerMessage,
    StreamStatus,
)


def connect(
    url: str,
    **kwargs,
) -> Session:
    """Create a PadLink session.

    Use as an async context manager, or call :meth:`Session.connect` from
    inside a running event loop. Keyword arguments are forwarded to
    :class:`Session` -- common ones: ``reconnect``, ``event_types``,
    ``auto_start_stream``, ``extra_headers``.

    Args:
        url: WebSocket server URL, e.g. ``"ws://pad.local:3000/ws"``.
        **kwargs: Passed to :class:`Session`.

    Returns:
        A :class:`Session` instance (not yet connected).
    """
    return Session(url, **kwargs)


__all__ = [
    "__version__",
    "connect",
    "Session",
    "MessageCodec",
    "CommandQueue",
    "ReconnectScheduler",
    "SubscriptionRegistry",
    "Channel",
    "ChannelHandlers",
    "WebSocketChannel",
    "Command",
    "Subscribe",
    "Unsubscribe",
    "ChangeProfile",
    "AddProfile",
    "RemoveProfile",
    "SetDefaultProfile",
    "UpdateThreshold",
    "GetCurrentThresholds",
    "ChangePlayer",
    "GetSensorValues",
    "StartSensorStream",
    "StopSensorStream",
    "ConnectionState",
    "EventType",
    "ResponseType",
    "StreamStatus",
    "Notice",
    "NoticeLevel",
    "Profile",
    "Player",
    "ProfilesSnapshot",
    "ServerMessage",
    "ReconnectConfig",
    "PadLinkError",
    "PadLinkConnectionError",
    "PadLinkProtocolError",
    "PadLinkCommandError",
]
