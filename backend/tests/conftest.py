"""Shared test fixtures for backend tests.

Provides a fake feed transport and a fake clock so monitor sessions can be
driven through every connection phase deterministically, without sockets or
real timers.
"""

import json
import sys
from collections.abc import Callable
from typing import Any

import pytest

# Ensure the backend package root is on sys.path so that absolute imports
# like ``from monitor.session import ...`` resolve correctly when running
# pytest from the repository root.
_backend_root = str(
    __import__("pathlib").Path(__file__).resolve().parent.parent
)
if _backend_root not in sys.path:
    sys.path.insert(0, _backend_root)

from events.bus import ExecutionEventBus  # noqa: E402
from monitor.session import ExecutionMonitor  # noqa: E402
from monitor.state import MonitorPolicy  # noqa: E402
from monitor.transport import FeedHandlers  # noqa: E402

# ---------------------------------------------------------------------------
# Event Bus
# ---------------------------------------------------------------------------


@pytest.fixture()
def event_bus() -> ExecutionEventBus:
    """Return a fresh ExecutionEventBus for each test."""
    return ExecutionEventBus(delivery_timeout_seconds=1.0)


# ---------------------------------------------------------------------------
# Fake Clock
# ---------------------------------------------------------------------------


class FakeTimer:
    """Timer handle returned by FakeClock."""

    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    """Manually advanced clock. Timers fire only inside advance()."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[FakeTimer] = []

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.now + delay_seconds, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        self.now += seconds
        while True:
            due = [t for t in self.pending if t.due <= self.now]
            if not due:
                return
            timer = min(due, key=lambda t: t.due)
            self.timers.remove(timer)
            timer.callback()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Fake Feed
# ---------------------------------------------------------------------------


class FakeFeed:
    """In-memory transport. Tests call open()/send()/fail()/drop() on it."""

    def __init__(self, handlers: FeedHandlers) -> None:
        self.handlers = handlers
        self.closed = False

    def open(self) -> None:
        self.handlers.on_open()

    def send(self, payload: dict[str, Any] | str | bytes) -> None:
        if isinstance(payload, dict):
            payload = json.dumps(payload)
        self.handlers.on_message(payload)

    def fail(self, reason: str = "connection reset") -> None:
        self.handlers.on_error(reason)
        self.handlers.on_close()

    def drop(self) -> None:
        self.handlers.on_close()

    def close(self) -> None:
        self.closed = True


class FakeFeedFactory:
    """FeedFactory recording every transport it builds."""

    def __init__(self) -> None:
        self.feeds: list[FakeFeed] = []

    def __call__(self, handlers: FeedHandlers) -> FakeFeed:
        feed = FakeFeed(handlers)
        self.feeds.append(feed)
        return feed

    @property
    def latest(self) -> FakeFeed:
        return self.feeds[-1]


@pytest.fixture()
def feed_factory() -> FakeFeedFactory:
    return FakeFeedFactory()


@pytest.fixture()
def policy() -> MonitorPolicy:
    return MonitorPolicy(reconnect_interval_ms=3000, max_reconnect_attempts=5)


@pytest.fixture()
def monitor(
    feed_factory: FakeFeedFactory,
    clock: FakeClock,
    policy: MonitorPolicy,
) -> ExecutionMonitor:
    """A monitor session wired to the fake feed and clock."""
    return ExecutionMonitor(
        "exec_test",
        "user_test",
        feed_factory,
        policy=policy,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# Event Factories
# ---------------------------------------------------------------------------


def make_event(
    event_type: str,
    data: Any = None,
    agent_id: str | None = None,
    agent_name: str | None = None,
    timestamp: str = "2024-05-01T12:00:00.000Z",
    execution_id: str = "exec_test",
) -> dict[str, Any]:
    """Build a wire-format (camelCase) event payload."""
    event: dict[str, Any] = {
        "type": event_type,
        "executionId": execution_id,
        "timestamp": timestamp,
    }
    if agent_id is not None:
        event["agentId"] = agent_id
    if agent_name is not None:
        event["agentName"] = agent_name
    if data is not None:
        event["data"] = data
    return event
