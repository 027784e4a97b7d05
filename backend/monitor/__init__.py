"""Client-side monitoring of workflow executions.

Key Components:
    - ExecutionMonitor: Session that follows one execution's event feed
    - MonitorState / ConnectionPhase: Derived state exposed to display surfaces
    - MonitorPolicy: Fixed-interval reconnection policy
    - WebSocketFeed / websocket_feed_factory / build_feed_url: Production transport

Usage:
    >>> from monitor import ExecutionMonitor, build_feed_url, websocket_feed_factory
    >>>
    >>> url = build_feed_url("localhost:8000", "exec_123", "user_1", secure=False)
    >>> session = ExecutionMonitor("exec_123", "user_1", websocket_feed_factory(url))
    >>> session.connect()          # inside a running event loop
    >>> session.state.phase
    <ConnectionPhase.CONNECTING: 'connecting'>
    >>> session.disconnect()
"""

from monitor.clock import Clock, LoopClock, TimerHandle
from monitor.session import ExecutionMonitor, StateListener
from monitor.state import ConnectionPhase, MonitorPolicy, MonitorState
from monitor.transport import (
    FeedFactory,
    FeedHandlers,
    FeedTransport,
    WebSocketFeed,
    build_feed_url,
    websocket_feed_factory,
)

__all__ = [
    # Session
    "ExecutionMonitor",
    "StateListener",
    # State
    "ConnectionPhase",
    "MonitorPolicy",
    "MonitorState",
    # Collaborators
    "Clock",
    "LoopClock",
    "TimerHandle",
    "FeedFactory",
    "FeedHandlers",
    "FeedTransport",
    "WebSocketFeed",
    "build_feed_url",
    "websocket_feed_factory",
]
