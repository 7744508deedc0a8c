# =============================================================================
# PadLink Python Client -- Command Queue
# =============================================================================
#
# Buffers commands submitted while the channel is down and hands them back in
# submission order once it opens. Commands are user-driven and low-frequency
# (profile and threshold edits), so the queue is unbounded. Sensor data is
# server-pushed and never passes through here.
# =============================================================================

from __future__ import annotations

from collections import deque
from typing import Any, Iterable

from ._logging import logger
from .commands import Command


class CommandQueue:
    """FIFO of commands waiting for an open channel."""

    def __init__(self) -> None:
        self._queue: deque[Command] = deque()
        self._total_enqueued = 0

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def size(self) -> int:
        return len(self._queue)

    def enqueue(self, command: Command) -> None:
        self._queue.append(command)
        self._total_enqueued += 1
        logger.debug("Queued %s (%d waiting)", command.TAG, len(self._queue))

    def drain(self) -> list[Command]:
        """Remove and return every queued command in insertion order."""
        drained = list(self._queue)
        self._queue.clear()
        return drained

    def restore(self, commands: Iterable[Command]) -> None:
        """Put commands back at the head of the queue, keeping their order.

        Used when a flush is interrupted by the channel going away.
        """
        restored = list(commands)
        self._queue.extendleft(reversed(restored))
        if restored:
            logger.debug("Restored %d unsent commands to queue", len(restored))

    def get_stats(self) -> dict[str, Any]:
        return {
            "size": len(self._queue),
            "total_enqueued": self._total_enqueued,
            "pending": [c.TAG for c in self._queue],
        }
