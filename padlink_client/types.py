# =============================================================================
# PadLink Python Client -- Type Definitions
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from .constants import (
    RECONNECT_BASE_DELAY,
    RECONNECT_MAX_ATTEMPTS,
    RECONNECT_MAX_DELAY,
)


class ConnectionState(str, Enum):
    """Session connection lifecycle state.

    Typical flow: DISCONNECTED -> CONNECTING -> OPEN. A dropped channel goes
    to RECONNECTING and back to CONNECTING when the backoff timer fires.
    FAILED is terminal until a manual reconnect.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class EventType(str, Enum):
    """Categories of server-pushed frames a client can subscribe to."""

    COMMAND_RESPONSE = "command_response"
    SENSOR_STREAM = "sensor_stream"
    ACTIVE_PLAYER_BROADCAST = "active_player_broadcast"


class ResponseType(str, Enum):
    """Known values of the ``response_type`` field on inbound frames."""

    COMMAND_RESPONSE = "command_response"
    SENSOR_STREAM = "sensor_stream"
    STREAM_STOPPED = "stream_stopped"
    ACTIVE_PLAYER_BROADCAST = "active_player_broadcast"


class StreamStatus(str, Enum):
    """Client-side view of the high-frequency sensor stream."""

    INACTIVE = "inactive"
    WAITING = "waiting"
    ACTIVE = "active"
    STOPPED = "stopped"


class NoticeLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


ALL_EVENT_TYPES: tuple[EventType, ...] = tuple(EventType)


@dataclass(frozen=True, slots=True)
class Profile:
    """Four per-sensor activation thresholds."""

    thresholds: tuple[int, int, int, int]


@dataclass(frozen=True, slots=True)
class Player:
    name: str
    profile: str


@dataclass(frozen=True, slots=True)
class ProfilesSnapshot:
    """Server-owned profile state, sent on connect and after every edit.

    Attributes:
        profiles: Profile name -> thresholds.
        current_profile: Name of the profile applied to the hardware.
        default_profile: Profile new players start with (may be empty).
        players: Player name -> player record.
        current_player: Name of the active player (may be empty).

    Immutable but not hashable: it holds mappings.
    """

    __hash__ = None  # type: ignore[assignment]

    profiles: Mapping[str, Profile]
    current_profile: str
    default_profile: str = ""
    players: Mapping[str, Player] = field(default_factory=dict)
    current_player: str = ""

    @property
    def current_thresholds(self) -> tuple[int, int, int, int] | None:
        profile = self.profiles.get(self.current_profile)
        return profile.thresholds if profile is not None else None


@dataclass(frozen=True, slots=True)
class ServerMessage:
    """A decoded inbound frame.

    Attributes:
        success: Whether the server considered the request successful.
        message: Human-readable status text (also carries subscription acks).
        response_type: :class:`ResponseType` when known, the raw string
            otherwise, ``None`` when absent.
        data: Profiles snapshot, when the frame carries one.
        sensor_values: Four sensor readings in 0..1023, when present.

    Not hashable, since ``data`` holds mappings.
    """

    __hash__ = None  # type: ignore[assignment]

    success: bool
    message: str
    response_type: ResponseType | str | None = None
    data: ProfilesSnapshot | None = None
    sensor_values: tuple[int, int, int, int] | None = None


@dataclass(frozen=True, slots=True)
class Notice:
    """A human-readable status line from the session."""

    level: NoticeLevel
    text: str


@dataclass
class ReconnectConfig:
    """Configuration for automatic reconnection.

    Attributes:
        base_delay: Delay in seconds before the first retry.
        max_delay: Maximum delay cap in seconds.
        max_attempts: Retries before the session gives up and goes FAILED.
    """

    base_delay: float = RECONNECT_BASE_DELAY
    max_delay: float = RECONNECT_MAX_DELAY
    max_attempts: int = RECONNECT_MAX_ATTEMPTS


@dataclass
class SessionStats:
    """Counters for a single session."""

    frames_received: int = 0
    frames_sent: int = 0
    malformed_frames: int = 0
    reconnect_count: int = 0
    stale_callbacks: int = 0
    connected_since: float | None = None
