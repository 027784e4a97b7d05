"""Event type definitions for the execution feed.

This module defines the events that flow from a running workflow execution to
every client watching it, and the derived records a monitor projects them
into. The wire form is camelCase JSON (``executionId``, ``agentId``, ...);
the Python attributes are snake_case and both spellings are accepted.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-05-01T12:00:00.000Z."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ExecutionEventType(StrEnum):
    """All event kinds carried by the execution feed.

    Events are categorized by:
    - Execution lifecycle: start, completion, and failure of a run
    - Agent lifecycle: an agent node starting and completing
    - Output: log lines and inter-agent messages
    """

    # Execution lifecycle
    EXECUTION_STARTED = "execution_started"
    EXECUTION_COMPLETED = "execution_completed"
    EXECUTION_FAILED = "execution_failed"

    # Agent lifecycle
    AGENT_STARTED = "agent_started"
    AGENT_COMPLETED = "agent_completed"

    # Output
    LOG = "log"
    MESSAGE = "message"


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExecutionEvent(_WireModel):
    """An event emitted during a workflow execution.

    Each event includes:
    - type: The kind of event (from ExecutionEventType)
    - execution_id: Which execution this event belongs to
    - agent_id / agent_name: The agent that produced it (if applicable)
    - data: Kind-dependent payload
    - timestamp: When the producer emitted it. Informational only; producers
      are distributed, so arrival order is the ordering authority.

    Payload schemas by event type:

    EXECUTION_STARTED:
        - workflowName: str - Name of the workflow being run

    AGENT_STARTED:
        - status: "running"

    AGENT_COMPLETED:
        - status: "completed"
        - result: Any - The agent's output

    EXECUTION_COMPLETED:
        - status: "completed"
        - output: Any - Final workflow output

    EXECUTION_FAILED:
        - status: "error"
        - error: str - Failure reason

    LOG:
        - level: str - Log level (defaults to "info")
        - message: str - Log text

    MESSAGE:
        - role: str - Message role (defaults to "assistant")
        - content: str - Message text
    """

    type: ExecutionEventType
    execution_id: str
    agent_id: str | None = None
    agent_name: str | None = None
    data: Any = None
    timestamp: str = Field(default_factory=utc_timestamp)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "type": "agent_started",
                    "executionId": "exec_abc123",
                    "agentId": "node_1",
                    "agentName": "Researcher",
                    "data": {"status": "running"},
                    "timestamp": "2024-05-01T12:00:00.000Z",
                }
            ]
        },
    )

    @property
    def payload(self) -> dict[str, Any]:
        """``data`` as a mapping; non-object payloads read as empty."""
        return self.data if isinstance(self.data, dict) else {}

    def to_wire(self) -> dict[str, Any]:
        """JSON-compatible camelCase representation."""
        return self.model_dump(mode="json", by_alias=True)


class LogEntry(_WireModel):
    """Projection of a ``log`` event."""

    level: str = "info"
    message: str = ""
    agent_id: str | None = None
    agent_name: str | None = None
    timestamp: str


class AgentMessage(_WireModel):
    """Projection of a ``message`` event."""

    agent_id: str | None = None
    agent_name: str | None = None
    role: str = "assistant"
    content: str = ""
    timestamp: str


class ActiveAgent(BaseModel):
    """The agent currently running within an execution."""

    id: str | None = None
    name: str | None = None
