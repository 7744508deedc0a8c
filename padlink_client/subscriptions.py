# =============================================================================
# PadLink Python Client -- Subscription Registry
# =============================================================================
#
# The server resets subscriptions per connection, so the client keeps the set
# it wants and replays it on every (re)connect. Server acks arrive as plain
# status text and are reconciled best-effort:
#
#   "Subscribed to: sensor_stream, command_response"
#   "Unsubscribed from: sensor_stream"
# =============================================================================

from __future__ import annotations

from typing import Any, Iterable

from ._logging import logger
from .constants import ACK_SEPARATOR, ACK_SUBSCRIBED, ACK_UNSUBSCRIBED
from .types import ALL_EVENT_TYPES, EventType


class SubscriptionRegistry:
    """Tracks the event types the client intends to receive.

    Args:
        defaults: Initial set. Defaults to every :class:`EventType`.
    """

    def __init__(self, defaults: Iterable[EventType | str] | None = None) -> None:
        self._defaults = frozenset(
            EventType(t) for t in (ALL_EVENT_TYPES if defaults is None else defaults)
        )
        self._subscribed: set[EventType] = set(self._defaults)

    def __contains__(self, event_type: object) -> bool:
        try:
            return EventType(event_type) in self._subscribed
        except ValueError:
            return False

    def __len__(self) -> int:
        return len(self._subscribed)

    def desired(self) -> list[EventType]:
        """Current set in declaration order, as sent in a resync Subscribe."""
        return [t for t in EventType if t in self._subscribed]

    def add(self, event_types: Iterable[EventType]) -> None:
        self._subscribed.update(event_types)

    def discard(self, event_types: Iterable[EventType]) -> None:
        self._subscribed.difference_update(event_types)

    @staticmethod
    def is_ack(text: str | None) -> bool:
        return bool(text) and (ACK_SUBSCRIBED in text or ACK_UNSUBSCRIBED in text)

    def apply(self, ack_text: str | None) -> bool:
        """Reconcile the set with a server ack message.

        Returns True if the text was a recognised ack. Unknown event names
        inside an ack and unrecognised text are ignored.
        """
        if not ack_text:
            return False

        if ACK_SUBSCRIBED in ack_text:
            names = _split(ack_text, ACK_SUBSCRIBED)
            self.add(_known(names))
        elif ACK_UNSUBSCRIBED in ack_text:
            names = _split(ack_text, ACK_UNSUBSCRIBED)
            self.discard(_known(names))
        else:
            return False

        logger.debug("Subscriptions reconciled: %s", [t.value for t in self.desired()])
        return True

    def get_stats(self) -> dict[str, Any]:
        return {
            "subscribed": [t.value for t in self.desired()],
            "defaults": [t.value for t in EventType if t in self._defaults],
        }


def _split(text: str, marker: str) -> list[str]:
    tail = text.split(marker, 1)[1]
    return [item.strip() for item in tail.split(ACK_SEPARATOR) if item.strip()]


def _known(names: list[str]) -> list[EventType]:
    known: list[EventType] = []
    for name in names:
        try:
            known.append(EventType(name))
        except ValueError:
            logger.debug("Ignoring unknown event type in ack: %r", name)
    return known
