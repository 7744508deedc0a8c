# =============================================================================
# PadLink Python Client -- Commands
# =============================================================================
#
# Client-to-server instructions. Each command is an immutable value object
# whose class-level TAG is the key of its wire frame:
#
#   {"ChangeProfile": {"name": "P1"}}
#   {"StartSensorStream": null}
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Iterable

from .constants import SENSOR_COUNT, SENSOR_MAX_VALUE, SENSOR_MIN_VALUE
from .errors import PadLinkCommandError
from .types import EventType


class Command:
    """Base for all commands. Subclasses set ``TAG`` and implement ``payload``."""

    __slots__ = ()

    TAG: ClassVar[str] = ""

    def payload(self) -> dict[str, Any] | None:
        return None


def _event_types(values: Iterable[EventType | str]) -> tuple[EventType, ...]:
    result: list[EventType] = []
    for value in values:
        try:
            event_type = EventType(value)
        except ValueError:
            raise PadLinkCommandError(f"Unknown event type: {value!r}") from None
        if event_type not in result:
            result.append(event_type)
    return tuple(result)


def _name(value: str, what: str = "name") -> str:
    if not isinstance(value, str) or not value.strip():
        raise PadLinkCommandError(f"{what} must be a non-empty string")
    return value.strip()


def _sensor_value(value: int, what: str = "value") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise PadLinkCommandError(f"{what} must be an integer, got {value!r}")
    if not SENSOR_MIN_VALUE <= value <= SENSOR_MAX_VALUE:
        raise PadLinkCommandError(
            f"{what} {value} outside {SENSOR_MIN_VALUE}..{SENSOR_MAX_VALUE}"
        )
    return value


# -- Subscription ----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Subscribe(Command):
    TAG: ClassVar[str] = "Subscribe"

    event_types: tuple[EventType, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "event_types", _event_types(self.event_types))

    def payload(self) -> dict[str, Any]:
        return {"event_types": [t.value for t in self.event_types]}


@dataclass(frozen=True, slots=True)
class Unsubscribe(Command):
    TAG: ClassVar[str] = "Unsubscribe"

    event_types: tuple[EventType, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "event_types", _event_types(self.event_types))

    def payload(self) -> dict[str, Any]:
        return {"event_types": [t.value for t in self.event_types]}


# -- Profiles --------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChangeProfile(Command):
    TAG: ClassVar[str] = "ChangeProfile"

    name: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _name(self.name))

    def payload(self) -> dict[str, Any]:
        return {"name": self.name}


@dataclass(frozen=True, slots=True)
class AddProfile(Command):
    """Create a profile with four thresholds (usually copied from the current one)."""

    TAG: ClassVar[str] = "AddProfile"

    name: str
    thresholds: tuple[int, int, int, int]

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _name(self.name))
        thresholds = tuple(self.thresholds)
        if len(thresholds) != SENSOR_COUNT:
            raise PadLinkCommandError(
                f"Expected {SENSOR_COUNT} thresholds, got {len(thresholds)}"
            )
        for i, value in enumerate(thresholds):
            _sensor_value(value, f"threshold[{i}]")
        object.__setattr__(self, "thresholds", thresholds)

    def payload(self) -> dict[str, Any]:
        return {"name": self.name, "thresholds": list(self.thresholds)}


@dataclass(frozen=True, slots=True)
class RemoveProfile(Command):
    TAG: ClassVar[str] = "RemoveProfile"

    name: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _name(self.name))

    def payload(self) -> dict[str, Any]:
        return {"name": self.name}


@dataclass(frozen=True, slots=True)
class SetDefaultProfile(Command):
    TAG: ClassVar[str] = "SetDefaultProfile"

    name: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _name(self.name))

    def payload(self) -> dict[str, Any]:
        return {"name": self.name}


@dataclass(frozen=True, slots=True)
class UpdateThreshold(Command):
    """Set one sensor threshold of a profile. ``index`` is 0-based."""

    TAG: ClassVar[str] = "UpdateThreshold"

    profile_name: str
    index: int
    value: int

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "profile_name", _name(self.profile_name, "profile_name")
        )
        if (
            isinstance(self.index, bool)
            or not isinstance(self.index, int)
            or not 0 <= self.index < SENSOR_COUNT
        ):
            raise PadLinkCommandError(
                f"threshold index must be 0..{SENSOR_COUNT - 1}, got {self.index!r}"
            )
        _sensor_value(self.value)

    def payload(self) -> dict[str, Any]:
        return {
            "profile_name": self.profile_name,
            "threshold_index": self.index,
            "value": self.value,
        }


@dataclass(frozen=True, slots=True)
class GetCurrentThresholds(Command):
    TAG: ClassVar[str] = "GetCurrentThresholds"


# -- Players ---------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChangePlayer(Command):
    TAG: ClassVar[str] = "ChangePlayer"

    name: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _name(self.name))

    def payload(self) -> dict[str, Any]:
        return {"name": self.name}


# -- Sensor stream ---------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GetSensorValues(Command):
    TAG: ClassVar[str] = "GetSensorValues"


@dataclass(frozen=True, slots=True)
class StartSensorStream(Command):
    TAG: ClassVar[str] = "StartSensorStream"


@dataclass(frozen=True, slots=True)
class StopSensorStream(Command):
    TAG: ClassVar[str] = "StopSensorStream"


COMMAND_TYPES: dict[str, type[Command]] = {
    cls.TAG: cls
    for cls in (
        Subscribe,
        Unsubscribe,
        ChangeProfile,
        AddProfile,
        RemoveProfile,
        SetDefaultProfile,
        UpdateThreshold,
        GetCurrentThresholds,
        ChangePlayer,
        GetSensorValues,
        StartSensorStream,
        StopSensorStream,
    )
}
