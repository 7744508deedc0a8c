# =============================================================================
# PadLink Python Client -- Wire Protocol Codec
# =============================================================================
#
# Outgoing (client -> server):
#   {"<CommandTag>": <payload-or-null>}            e.g. {"StartSensorStream":null}
#
# Incoming (server -> client):
#   {"success": bool, "message": str, "response_type"?: str,
#    "data"?: ProfilesSnapshot, "sensor_values"?: [int, int, int, int]}
# =============================================================================

from __future__ import annotations

from typing import Any

import orjson

from ._logging import logger
from .commands import COMMAND_TYPES, Command
from .constants import (
    MAX_MESSAGE_SIZE,
    SENSOR_COUNT,
    SENSOR_MAX_VALUE,
    SENSOR_MIN_VALUE,
)
from .errors import PadLinkCommandError, PadLinkProtocolError
from .types import Player, Profile, ProfilesSnapshot, ResponseType, ServerMessage


class MessageCodec:
    """Encode commands and decode server frames. Stateless."""

    def encode(self, command: Command) -> str:
        """Encode a command as a compact JSON text frame."""
        return orjson.dumps({command.TAG: command.payload()}).decode()

    def decode(self, data: str | bytes) -> ServerMessage:
        """Decode an inbound frame.

        Raises:
            PadLinkProtocolError: If the frame is oversized, not JSON, or does
                not match the server message shape.
        """
        if len(data) > MAX_MESSAGE_SIZE:
            raise PadLinkProtocolError(
                f"Frame exceeds max size ({len(data)} > {MAX_MESSAGE_SIZE} bytes)"
            )
        try:
            parsed = orjson.loads(data)
        except orjson.JSONDecodeError as exc:
            raise PadLinkProtocolError(f"Invalid JSON: {exc}") from exc

        if not isinstance(parsed, dict):
            raise PadLinkProtocolError("Frame is not a JSON object")

        success = parsed.get("success")
        message = parsed.get("message")
        if not isinstance(success, bool):
            raise PadLinkProtocolError("Missing or non-boolean 'success'")
        if not isinstance(message, str):
            raise PadLinkProtocolError("Missing or non-string 'message'")

        data_field = parsed.get("data")
        sensor_values = parsed.get("sensor_values")
        return ServerMessage(
            success=success,
            message=message,
            response_type=_response_type(parsed.get("response_type")),
            data=_snapshot(data_field) if data_field is not None else None,
            sensor_values=(
                _readings(sensor_values, "sensor_values")
                if sensor_values is not None
                else None
            ),
        )

    def decode_command(self, data: str | bytes) -> Command:
        """Decode an outbound command frame (the server's side of the wire)."""
        try:
            parsed = orjson.loads(data)
        except orjson.JSONDecodeError as exc:
            raise PadLinkProtocolError(f"Invalid JSON: {exc}") from exc
        if not isinstance(parsed, dict) or len(parsed) != 1:
            raise PadLinkProtocolError("Command frame must have exactly one tag")

        ((tag, payload),) = parsed.items()
        cls = COMMAND_TYPES.get(tag)
        if cls is None:
            raise PadLinkProtocolError(f"Unknown command tag: {tag!r}")
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise PadLinkProtocolError(f"{tag} payload must be an object or null")
        if tag == "UpdateThreshold" and "threshold_index" in payload:
            payload = dict(payload)
            payload["index"] = payload.pop("threshold_index")
        try:
            return cls(**payload)
        except (TypeError, PadLinkCommandError) as exc:
            raise PadLinkProtocolError(f"Invalid {tag} payload: {exc}") from exc


# -- Helpers ---------------------------------------------------------------------


def _response_type(value: Any) -> ResponseType | str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise PadLinkProtocolError("'response_type' must be a string")
    try:
        return ResponseType(value)
    except ValueError:
        logger.debug("Unknown response_type %r, keeping raw value", value)
        return value


def _readings(value: Any, what: str) -> tuple[int, int, int, int]:
    if not isinstance(value, list) or len(value) != SENSOR_COUNT:
        raise PadLinkProtocolError(f"'{what}' must be a list of {SENSOR_COUNT} ints")
    for item in value:
        if isinstance(item, bool) or not isinstance(item, int):
            raise PadLinkProtocolError(f"'{what}' contains a non-integer: {item!r}")
        if not SENSOR_MIN_VALUE <= item <= SENSOR_MAX_VALUE:
            raise PadLinkProtocolError(f"'{what}' value out of range: {item}")
    return tuple(value)  # type: ignore[return-value]


def _thresholds(value: Any, profile: str) -> tuple[int, int, int, int]:
    # Server-owned values: shape checked, range left to the server
    if not isinstance(value, list) or len(value) != SENSOR_COUNT:
        raise PadLinkProtocolError(
            f"Profile {profile!r} thresholds must be a list of {SENSOR_COUNT} ints"
        )
    for item in value:
        if isinstance(item, bool) or not isinstance(item, int):
            raise PadLinkProtocolError(
                f"Profile {profile!r} threshold is not an integer: {item!r}"
            )
    return tuple(value)  # type: ignore[return-value]


def _snapshot(value: Any) -> ProfilesSnapshot:
    if not isinstance(value, dict):
        raise PadLinkProtocolError("'data' must be an object")

    raw_profiles = value.get("profiles")
    if not isinstance(raw_profiles, dict):
        raise PadLinkProtocolError("'data.profiles' must be an object")
    profiles: dict[str, Profile] = {}
    for name, entry in raw_profiles.items():
        if not isinstance(entry, dict):
            raise PadLinkProtocolError(f"Profile {name!r} must be an object")
        profiles[name] = Profile(thresholds=_thresholds(entry.get("thresholds"), name))

    players: dict[str, Player] = {}
    raw_players = value.get("players") or {}
    if not isinstance(raw_players, dict):
        raise PadLinkProtocolError("'data.players' must be an object")
    for name, entry in raw_players.items():
        if not isinstance(entry, dict):
            raise PadLinkProtocolError(f"Player {name!r} must be an object")
        players[name] = Player(
            name=str(entry.get("name", name)),
            profile=str(entry.get("profile", "")),
        )

    current_profile = value.get("current_profile", "")
    if not isinstance(current_profile, str):
        raise PadLinkProtocolError("'data.current_profile' must be a string")

    return ProfilesSnapshot(
        profiles=profiles,
        current_profile=current_profile,
        default_profile=str(value.get("default_profile") or ""),
        players=players,
        current_player=str(value.get("current_player") or ""),
    )
