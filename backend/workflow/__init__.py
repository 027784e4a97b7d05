"""Workflow graph integrity.

This package guards the execution-order contract of a workflow: its edges
must form a directed acyclic graph.

Key Components:
    - validate_connection: Verdict for a single proposed edge
    - would_create_cycle: Reachability check behind the cycle rejection
    - WorkflowValidator: Full structural check of a workflow definition

Usage:
    >>> from workflow import WorkflowEdge, validate_connection
    >>>
    >>> edges = [WorkflowEdge(source="1", target="2"), WorkflowEdge(source="2", target="3")]
    >>> verdict = validate_connection(WorkflowEdge(source="3", target="1"), [], edges)
    >>> verdict.reason
    <ReasonCode.CYCLE_DETECTED: 'cycle_detected'>
"""

from workflow.connection import validate_connection, would_create_cycle
from workflow.integrity import (
    ValidationIssue,
    WorkflowValidationError,
    WorkflowValidationResult,
    WorkflowValidator,
    workflow_validator,
)
from workflow.types import ReasonCode, Verdict, WorkflowEdge, WorkflowNode

__all__ = [
    # Types
    "ReasonCode",
    "Verdict",
    "WorkflowEdge",
    "WorkflowNode",
    # Connection validation
    "validate_connection",
    "would_create_cycle",
    # Whole-workflow validation
    "ValidationIssue",
    "WorkflowValidationError",
    "WorkflowValidationResult",
    "WorkflowValidator",
    "workflow_validator",
]
