"""Pydantic schemas for API request/response models.

This module defines the request and response bodies of the HTTP API.
Validation verdicts and workflow validation results are returned as the
models from the ``workflow`` package directly.
"""

from typing import Literal

from pydantic import BaseModel, Field

from workflow.types import WorkflowEdge, WorkflowNode


class ValidateConnectionRequest(BaseModel):
    """Request body for checking a proposed edge before committing it."""

    connection: WorkflowEdge = Field(
        description="The proposed edge",
        examples=[{"source": "node_1", "target": "node_2"}],
    )
    nodes: list[WorkflowNode] = Field(
        default_factory=list,
        description="Nodes currently in the workflow",
    )
    edges: list[WorkflowEdge] = Field(
        default_factory=list,
        description="Edges currently in the workflow",
    )


class ValidateWorkflowRequest(BaseModel):
    """Request body for validating a complete workflow definition."""

    nodes: list[WorkflowNode] = Field(
        default_factory=list,
        description="All nodes of the workflow",
    )
    edges: list[WorkflowEdge] = Field(
        default_factory=list,
        description="All edges of the workflow",
    )


class ErrorDetail(BaseModel):
    """Structured error body returned with 4xx responses."""

    error: str = Field(description="Summary of what went wrong")
    details: list[dict[str, str]] = Field(
        default_factory=list,
        description="Per-field issues with their error codes",
    )
    status_code: int = Field(description="HTTP status code")


class HealthResponse(BaseModel):
    """Health check response with relay status."""

    status: Literal["healthy", "unhealthy"] = Field(
        description="Overall health status",
    )
    timestamp: float = Field(
        description="Current server timestamp",
    )
    version: str = Field(
        default="0.1.0",
        description="API version",
    )
    active_executions: int = Field(
        default=0,
        description="Number of executions with at least one connected watcher",
    )
