"""Event system for workflow execution feeds.

This package provides the event infrastructure between a running workflow
execution and the clients watching it. The relay side is an async pub/sub
bus built on asyncio.Queue; the client side lives in the ``monitor`` package.

Key Components:
    - ExecutionEventType: Enum of all event kinds on the feed
    - ExecutionEvent: Pydantic model for events flowing through the feed
    - LogEntry / AgentMessage / ActiveAgent: Projections kept by a monitor
    - ExecutionEventBus: Async pub/sub relay keyed by execution id

Usage:
    >>> from events import ExecutionEventBus
    >>>
    >>> bus = ExecutionEventBus()
    >>> queue = bus.subscribe("exec_123")
    >>> await bus.emit_agent_started("exec_123", "node_1", "Researcher")
    >>> event = await queue.get()
    >>> print(f"Received: {event.type.value}")

Event Flow:
    1. The execution engine publishes through ExecutionEventBus.emit_*()
    2. The /ws handler subscribes a queue per connected watcher
    3. Events are forwarded to the watcher as camelCase JSON
    4. The watcher's ExecutionMonitor folds them into MonitorState
"""

from events.bus import ExecutionEventBus
from events.types import (
    ActiveAgent,
    AgentMessage,
    ExecutionEvent,
    ExecutionEventType,
    LogEntry,
    utc_timestamp,
)

__all__ = [
    # Event types
    "ExecutionEventType",
    "ExecutionEvent",
    "LogEntry",
    "AgentMessage",
    "ActiveAgent",
    "utc_timestamp",
    # Event bus
    "ExecutionEventBus",
]
