"""Shared fixtures: a scriptable fake channel and a manual clock."""

from __future__ import annotations

import json
from typing import Any

import pytest

from padlink_client.errors import PadLinkConnectionError
from padlink_client.protocol import MessageCodec
from padlink_client.session import Session
from padlink_client.transport import ChannelHandlers
from padlink_client.types import ReconnectConfig

_codec = MessageCodec()


class FakeTimer:
    def __init__(self, when: float, delay: float, callback, args) -> None:
        self.when = when
        self.delay = delay
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    """Drop-in for ``loop.call_later`` that only moves when told to."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback, *args: Any) -> FakeTimer:
        timer = FakeTimer(self.now + delay, delay, callback, args)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self.pending if t.when <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.now = max(self.now, timer.when)
            timer.fired = True
            timer.callback(*timer.args)
        self.now = target


class FakeChannel:
    """Channel whose lifecycle is driven by the test."""

    def __init__(self, url: str, handlers: ChannelHandlers) -> None:
        self.url = url
        self.handlers = handlers
        self.sent: list[str] = []
        self.opened = False
        self.closed = False
        self.fail_sends = False

    # Channel API
    def open(self) -> None:
        self.opened = True

    def send(self, data: str) -> None:
        if self.closed or self.fail_sends:
            raise PadLinkConnectionError("Channel is not open")
        self.sent.append(data)

    def close(self) -> None:
        self.closed = True

    # Test controls
    def accept(self) -> None:
        self.handlers.on_open()

    def receive(self, frame: dict[str, Any] | str | bytes) -> None:
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self.handlers.on_message(frame)

    def drop(self, code: int | None = 1006, reason: str = "") -> None:
        self.handlers.on_close(code, reason)

    def fail(self, message: str = "connection refused") -> None:
        self.handlers.on_error(PadLinkConnectionError(message))
        self.handlers.on_close(None, message)

    @property
    def commands(self) -> list:
        return [_codec.decode_command(frame) for frame in self.sent]


class ChannelRecorder:
    """Channel factory that remembers every channel it built."""

    def __init__(self) -> None:
        self.channels: list[FakeChannel] = []

    def __call__(self, url: str, handlers: ChannelHandlers) -> FakeChannel:
        channel = FakeChannel(url, handlers)
        self.channels.append(channel)
        return channel

    @property
    def last(self) -> FakeChannel:
        return self.channels[-1]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def channels():
    return ChannelRecorder()


@pytest.fixture
def reconnect_config():
    return ReconnectConfig(base_delay=1.0, max_delay=8.0, max_attempts=4)


@pytest.fixture
def session(clock, channels, reconnect_config):
    return Session(
        "ws://pad.test/ws",
        reconnect=reconnect_config,
        channel_factory=channels,
        call_later=clock.call_later,
    )


def profiles_frame(
    current: str = "DEFAULT",
    thresholds: list[int] | None = None,
    message: str = "Connected to profile manager",
    current_player: str = "",
) -> dict[str, Any]:
    return {
        "success": True,
        "message": message,
        "response_type": "command_response",
        "data": {
            "profiles": {current: {"thresholds": thresholds or [100, 200, 300, 400]}},
            "current_profile": current,
            "default_profile": current,
            "players": {},
            "current_player": current_player,
        },
        "sensor_values": None,
    }


def sensor_frame(values: list[int]) -> dict[str, Any]:
    return {
        "success": True,
        "message": "Sensor stream data",
        "response_type": "sensor_stream",
        "data": None,
        "sensor_values": values,
    }
