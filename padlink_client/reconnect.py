# =============================================================================
# PadLink Python Client -- Reconnect Scheduler
# =============================================================================
#
# Exponential backoff without jitter:
#
#   delay(attempt) = min(base_delay * 2 ** (attempt - 1), max_delay)
#
# The attempt counter is incremented before the delay is computed, so the
# first retry waits base_delay. At most one timer is pending at any time.
# =============================================================================

from __future__ import annotations

from typing import Any, Callable, Protocol

from ._logging import logger
from .types import ReconnectConfig


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


# Signature of asyncio.AbstractEventLoop.call_later
CallLater = Callable[..., TimerHandle]


class ReconnectScheduler:
    """Backoff timer with a bounded retry budget.

    Args:
        config: Delays and retry budget.
        call_later: ``call_later(delay, callback, *args)`` returning a handle
            with ``cancel()``. Usually the running event loop's ``call_later``.
    """

    def __init__(self, config: ReconnectConfig, call_later: CallLater) -> None:
        self._config = config
        self._call_later = call_later
        self._attempt = 0
        self._handle: TimerHandle | None = None
        self._generation = 0

    @property
    def attempt(self) -> int:
        return self._attempt

    @property
    def max_attempts(self) -> int:
        return self._config.max_attempts

    @property
    def exhausted(self) -> bool:
        return self._attempt >= self._config.max_attempts

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def delay_for(self, attempt: int) -> float:
        """Backoff delay in seconds for a 1-based attempt number."""
        if attempt < 1:
            return 0.0
        cfg = self._config
        return min(cfg.base_delay * (2 ** (attempt - 1)), cfg.max_delay)

    def schedule(self, callback: Callable[[], Any]) -> float | None:
        """Schedule the next attempt.

        Returns the delay in seconds, or ``None`` when the retry budget is
        spent (no timer is started in that case).
        """
        if self.exhausted:
            logger.error(
                "Max reconnect attempts (%d) reached", self._config.max_attempts
            )
            return None

        self.cancel()
        self._attempt += 1
        delay = self.delay_for(self._attempt)
        generation = self._generation
        self._handle = self._call_later(delay, self._fire, generation, callback)
        logger.info(
            "Reconnecting in %.2fs (attempt %d/%d)",
            delay,
            self._attempt,
            self._config.max_attempts,
        )
        return delay

    def cancel(self) -> None:
        """Cancel the pending timer, if any."""
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def reset(self) -> None:
        """Zero the attempt counter and cancel any pending timer."""
        self.cancel()
        self._attempt = 0

    def _fire(self, generation: int, callback: Callable[[], Any]) -> None:
        if generation != self._generation:
            logger.debug("Ignoring superseded reconnect timer")
            return
        self._handle = None
        callback()

    def get_stats(self) -> dict[str, Any]:
        return {
            "attempt": self._attempt,
            "max_attempts": self._config.max_attempts,
            "pending": self.pending,
            "next_delay": (
                None if self.exhausted else self.delay_for(self._attempt + 1)
            ),
        }
