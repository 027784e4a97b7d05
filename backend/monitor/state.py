"""Connection phases, reconnection policy and derived monitor state."""

from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from events.types import ActiveAgent, AgentMessage, ExecutionEvent, LogEntry

if TYPE_CHECKING:
    from config import Settings


class ConnectionPhase(StrEnum):
    """Connection health of a monitor session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERRORED = "errored"


class MonitorPolicy(BaseModel):
    """Reconnection policy of a monitor session.

    The delay between attempts is fixed; there is no backoff.
    """

    reconnect_interval_ms: int = Field(default=3000, ge=0)
    max_reconnect_attempts: int = Field(default=5, ge=0)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "MonitorPolicy":
        return cls(
            reconnect_interval_ms=settings.monitor_reconnect_interval_ms,
            max_reconnect_attempts=settings.monitor_max_reconnect_attempts,
        )

    @property
    def reconnect_interval_seconds(self) -> float:
        return self.reconnect_interval_ms / 1000.0


class MonitorState(BaseModel):
    """Everything a display surface needs about one execution.

    ``events`` is the full arrival-ordered log; ``logs`` and ``messages`` are
    projections of it in the same order. The lists only ever grow while the
    session is live.

    Attributes:
        phase: Current connection phase
        events: Every event received, in arrival order
        logs: Projection of ``log`` events
        messages: Projection of ``message`` events
        active_agent: Most recently started agent not yet completed
        last_error: Last connection-level failure reason
        reconnect_attempts: Reconnects scheduled since the last successful open
    """

    model_config = ConfigDict(frozen=True)

    phase: ConnectionPhase = ConnectionPhase.IDLE
    events: list[ExecutionEvent] = Field(default_factory=list)
    logs: list[LogEntry] = Field(default_factory=list)
    messages: list[AgentMessage] = Field(default_factory=list)
    active_agent: ActiveAgent | None = None
    last_error: str | None = None
    reconnect_attempts: int = 0
