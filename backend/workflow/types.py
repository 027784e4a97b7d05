"""Type definitions for workflow graphs and validation verdicts.

Nodes and edges arrive from the graph-editing surface as plain JSON, so the
models here are permissive: missing or empty fields are representable and it
is the validators' job to report them, not pydantic's.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ReasonCode(StrEnum):
    """Why a proposed edge was rejected."""

    MISSING_ENDPOINT = "missing_endpoint"
    SELF_LOOP = "self_loop"
    DUPLICATE_EDGE = "duplicate_edge"
    CYCLE_DETECTED = "cycle_detected"


REASON_MESSAGES: dict[ReasonCode, str] = {
    ReasonCode.MISSING_ENDPOINT: "Invalid connection: missing source or target",
    ReasonCode.SELF_LOOP: "Cannot connect a node to itself",
    ReasonCode.DUPLICATE_EDGE: "Connection already exists",
    ReasonCode.CYCLE_DETECTED: "Connection would create a cycle",
}


class WorkflowNode(BaseModel):
    """A node of a workflow graph.

    Only ``id`` matters to the edge validator. ``type``, ``data`` and
    ``position`` are read by whole-workflow validation.
    """

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    type: str | None = None
    data: dict[str, Any] | None = None
    position: dict[str, Any] | None = None


class WorkflowEdge(BaseModel):
    """A directed edge between two workflow nodes.

    ``source_handle`` and ``target_handle`` name the slots on each node; two
    edges with the same endpoints but different handles are distinct.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str | None = None
    source: str | None = None
    target: str | None = None
    source_handle: str | None = Field(default=None, alias="sourceHandle")
    target_handle: str | None = Field(default=None, alias="targetHandle")

    @property
    def key(self) -> tuple[str | None, str | None, str | None, str | None]:
        """Identity used for duplicate detection."""
        return (self.source, self.target, self.source_handle, self.target_handle)


class Verdict(BaseModel):
    """Outcome of validating a proposed edge.

    A rejection is a normal outcome: ``valid`` is False and ``reason`` says why.
    """

    valid: bool
    reason: ReasonCode | None = None
    message: str | None = None

    @classmethod
    def accept(cls) -> "Verdict":
        return cls(valid=True)

    @classmethod
    def reject(cls, reason: ReasonCode) -> "Verdict":
        return cls(valid=False, reason=reason, message=REASON_MESSAGES[reason])
