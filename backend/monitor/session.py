"""Live monitoring of one workflow execution.

An ExecutionMonitor owns a single feed transport at a time, folds every
inbound event into a MonitorState, and reconnects after unintentional closes
on a fixed interval until its attempt budget runs out.

Connection phases:

    idle --connect()--> connecting --open--> connected
    connected --close--> disconnected --timer--> connecting   (attempts left)
    connected --close--> disconnected --> errored             (budget spent)
    connecting|connected --disconnect()--> disconnected       (no reconnect)
    any --transport error--> errored

All transitions run synchronously inside transport callbacks or public
calls, so a state snapshot is never observed half-updated.
"""

from collections.abc import Callable
from typing import Any

import structlog
from pydantic import ValidationError

from config import settings
from events.types import (
    ActiveAgent,
    AgentMessage,
    ExecutionEvent,
    ExecutionEventType,
    LogEntry,
)
from monitor.clock import Clock, LoopClock, TimerHandle
from monitor.state import ConnectionPhase, MonitorPolicy, MonitorState
from monitor.transport import FeedFactory, FeedHandlers, FeedTransport

logger = structlog.get_logger(__name__)

StateListener = Callable[[MonitorState], None]

MAX_ATTEMPTS_ERROR = "Max reconnection attempts reached"
TRANSPORT_ERROR = "Feed connection error"
TRANSPORT_CREATE_ERROR = "Failed to create feed connection"

_ACTIVE_AGENT_CLEARED_BY = frozenset(
    {
        ExecutionEventType.AGENT_COMPLETED,
        ExecutionEventType.EXECUTION_COMPLETED,
        ExecutionEventType.EXECUTION_FAILED,
    }
)


def _to_string(value: object, *, default: str) -> str:
    """Use non-empty strings as-is, otherwise the default."""
    if isinstance(value, str) and value:
        return value
    return default


class ExecutionMonitor:
    """Client session watching the event feed of one execution.

    Args:
        execution_id: The execution to watch.
        identity: Caller identity presented to the feed.
        feed_factory: Builds a fresh transport for each connection attempt.
        policy: Reconnection policy; defaults to the configured one.
        clock: Timer primitive for reconnect delays; defaults to the
            running asyncio loop.

    Raises:
        ValueError: If ``execution_id`` or ``identity`` is empty.
    """

    def __init__(
        self,
        execution_id: str,
        identity: str,
        feed_factory: FeedFactory,
        policy: MonitorPolicy | None = None,
        clock: Clock | None = None,
    ) -> None:
        if not execution_id or not identity:
            raise ValueError("ExecutionMonitor requires a non-empty execution_id and identity")

        self.execution_id = execution_id
        self.identity = identity
        self.policy = policy or MonitorPolicy.from_settings(settings)

        self._feed_factory = feed_factory
        self._clock: Clock = clock or LoopClock()
        self._state = MonitorState()
        self._listeners: list[StateListener] = []

        self._transport: FeedTransport | None = None
        # Bumped whenever the current transport is retired; callbacks carry
        # the generation they were created for and are ignored once stale.
        self._generation = 0
        self._reconnect_timer: TimerHandle | None = None
        self._closing = False

        self._log = logger.bind(execution_id=execution_id)

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> MonitorState:
        """Current snapshot. Each mutation replaces it with a new object."""
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state.phase == ConnectionPhase.CONNECTED

    @property
    def is_connecting(self) -> bool:
        return self._state.phase == ConnectionPhase.CONNECTING

    @property
    def is_disconnected(self) -> bool:
        return self._state.phase == ConnectionPhase.DISCONNECTED

    @property
    def has_error(self) -> bool:
        return self._state.phase == ConnectionPhase.ERRORED

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` with every new snapshot. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def connect(self) -> None:
        """Open the feed, resetting the reconnect budget.

        A no-op while a transport is live. From ``errored`` this is the only
        way back to a connection.
        """
        if self._transport is not None:
            self._log.info("monitor_already_connected", phase=self._state.phase.value)
            return

        self._cancel_reconnect()
        self._closing = False
        self._log.info("monitor_connecting", identity=self.identity)
        self._open_transport(reconnect_attempts=0)

    def disconnect(self) -> None:
        """Stop the session. Idempotent.

        Cancels any pending reconnect and closes the live transport. Late
        callbacks from that transport are ignored, so the state is left
        exactly as last observed apart from the phase change.
        """
        self._closing = True
        self._cancel_reconnect()

        transport = self._transport
        self._retire_transport()
        if transport is not None:
            transport.close()
            self._log.info("monitor_disconnected_by_caller")

        if self._state.phase in (ConnectionPhase.CONNECTING, ConnectionPhase.CONNECTED):
            self._update(phase=ConnectionPhase.DISCONNECTED)

    # ------------------------------------------------------------------
    # Transport lifecycle
    # ------------------------------------------------------------------

    def _open_transport(self, **changes: Any) -> None:
        self._generation += 1
        generation = self._generation
        self._update(phase=ConnectionPhase.CONNECTING, **changes)

        handlers = FeedHandlers(
            on_open=lambda: self._handle_open(generation),
            on_message=lambda raw: self._handle_message(generation, raw),
            on_error=lambda reason: self._handle_error(generation, reason),
            on_close=lambda: self._handle_close(generation),
        )
        try:
            transport = self._feed_factory(handlers)
        except Exception as e:
            self._log.error("monitor_transport_create_failed", error=str(e))
            self._retire_transport()
            self._update(phase=ConnectionPhase.ERRORED, last_error=TRANSPORT_CREATE_ERROR)
            return

        # The factory may already have reported close synchronously
        if generation == self._generation:
            self._transport = transport

    def _retire_transport(self) -> None:
        self._transport = None
        self._generation += 1

    def _handle_open(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._log.info("monitor_connected")
        self._update(
            phase=ConnectionPhase.CONNECTED,
            last_error=None,
            reconnect_attempts=0,
        )

    def _handle_message(self, generation: int, raw: str | bytes) -> None:
        if generation != self._generation:
            return
        self.ingest(raw)

    def _handle_error(self, generation: int, reason: str) -> None:
        if generation != self._generation:
            return
        self._log.warning("monitor_transport_error", reason=reason)
        self._update(phase=ConnectionPhase.ERRORED, last_error=reason or TRANSPORT_ERROR)

    def _handle_close(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._retire_transport()
        if self._closing:
            return

        attempts = self._state.reconnect_attempts
        if attempts < self.policy.max_reconnect_attempts:
            attempts += 1
            self._update(phase=ConnectionPhase.DISCONNECTED, reconnect_attempts=attempts)
            self._log.info(
                "monitor_reconnect_scheduled",
                attempt=attempts,
                max_attempts=self.policy.max_reconnect_attempts,
                delay_ms=self.policy.reconnect_interval_ms,
            )
            self._reconnect_timer = self._clock.call_later(
                self.policy.reconnect_interval_seconds, self._reconnect
            )
        else:
            self._log.warning("monitor_reconnect_exhausted", attempts=attempts)
            self._update(phase=ConnectionPhase.ERRORED, last_error=MAX_ATTEMPTS_ERROR)

    def _reconnect(self) -> None:
        self._reconnect_timer = None
        if self._closing or self._transport is not None:
            return
        self._open_transport()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    # ------------------------------------------------------------------
    # Event ingestion
    # ------------------------------------------------------------------

    def ingest(self, raw: str | bytes) -> bool:
        """Fold one inbound payload into the state.

        Malformed payloads are logged and dropped without touching the state.

        Returns:
            True if the payload was a valid event and has been applied.
        """
        if self._closing:
            self._log.debug("monitor_event_ignored_after_disconnect")
            return False

        try:
            event = ExecutionEvent.model_validate_json(raw)
        except ValidationError as e:
            self._log.warning("monitor_event_dropped", error_count=e.error_count())
            return False

        state = self._state
        changes: dict[str, Any] = {"events": [*state.events, event]}

        if event.type == ExecutionEventType.LOG:
            changes["logs"] = [*state.logs, self._to_log_entry(event)]
        elif event.type == ExecutionEventType.MESSAGE:
            changes["messages"] = [*state.messages, self._to_agent_message(event)]
        elif event.type == ExecutionEventType.AGENT_STARTED:
            changes["active_agent"] = ActiveAgent(id=event.agent_id, name=event.agent_name)
        elif event.type in _ACTIVE_AGENT_CLEARED_BY:
            changes["active_agent"] = None

        self._log.debug("monitor_event_received", event_type=event.type.value)
        self._update(**changes)
        return True

    @staticmethod
    def _to_log_entry(event: ExecutionEvent) -> LogEntry:
        payload = event.payload
        return LogEntry(
            level=_to_string(payload.get("level"), default="info"),
            message=_to_string(payload.get("message"), default=""),
            agent_id=event.agent_id,
            agent_name=event.agent_name,
            timestamp=event.timestamp,
        )

    @staticmethod
    def _to_agent_message(event: ExecutionEvent) -> AgentMessage:
        payload = event.payload
        return AgentMessage(
            agent_id=event.agent_id,
            agent_name=event.agent_name,
            role=_to_string(payload.get("role"), default="assistant"),
            content=_to_string(payload.get("content"), default=""),
            timestamp=event.timestamp,
        )

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _update(self, **changes: Any) -> None:
        self._state = self._state.model_copy(update=changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                self._log.warning("monitor_listener_failed", exc_info=True)
