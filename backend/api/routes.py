"""HTTP API routes for the Agentflow backend.

This module defines the validation endpoints used by the graph-editing
surface, and the health check. Execution feeds are served over WebSocket in
websocket.py.
"""

from __future__ import annotations

import time
from typing import Annotated

import structlog
from fastapi import APIRouter, HTTPException, Query

from api.websocket import get_event_bus
from models.schemas import (
    ErrorDetail,
    HealthResponse,
    ValidateConnectionRequest,
    ValidateWorkflowRequest,
)
from workflow import (
    Verdict,
    WorkflowValidationError,
    WorkflowValidationResult,
    validate_connection,
    workflow_validator,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post(
    "/api/connections/validate",
    response_model=Verdict,
    summary="Validate a proposed connection",
    description=(
        "Check whether an edge may be added to a workflow without creating a "
        "self-loop, a duplicate, or a cycle. Rejections are returned with a "
        "reason code, not as errors."
    ),
)
async def validate_connection_route(request: ValidateConnectionRequest) -> Verdict:
    """Validate a single proposed edge against the current workflow graph.

    Args:
        request: The candidate edge plus the workflow's current nodes and edges.

    Returns:
        The Verdict for the candidate.
    """
    verdict = validate_connection(request.connection, request.nodes, request.edges)
    logger.debug(
        "connection_validated",
        valid=verdict.valid,
        reason=verdict.reason,
        edge_count=len(request.edges),
    )
    return verdict


@router.post(
    "/api/workflows/validate",
    response_model=WorkflowValidationResult,
    summary="Validate a workflow",
    description=(
        "Run every structural check on a workflow definition. With strict=true "
        "an invalid workflow is answered with 400 and the issue list."
    ),
)
async def validate_workflow_route(
    request: ValidateWorkflowRequest,
    strict: Annotated[bool, Query(description="Reject invalid workflows with 400")] = False,
) -> WorkflowValidationResult:
    """Validate a complete workflow definition.

    Args:
        request: All nodes and edges of the workflow.
        strict: Whether to answer an invalid workflow with HTTP 400.

    Returns:
        WorkflowValidationResult listing every issue found.

    Raises:
        HTTPException: In strict mode, if the workflow is invalid.
    """
    if not strict:
        return workflow_validator.validate(request.nodes, request.edges)

    try:
        workflow_validator.validate_or_raise(request.nodes, request.edges)
    except WorkflowValidationError as e:
        logger.info("workflow_rejected", error_count=len(e.errors))
        raise HTTPException(
            status_code=e.status_code,
            detail=ErrorDetail(
                error=str(e),
                details=[issue.model_dump() for issue in e.errors],
                status_code=e.status_code,
            ).model_dump(),
        ) from e

    return WorkflowValidationResult(valid=True, errors=[])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Health check endpoint with execution relay status.",
)
async def health_check() -> HealthResponse:
    """Health check endpoint.

    Returns:
        HealthResponse with status, timestamp, and the number of executions
        that currently have watchers.
    """
    active_executions = 0
    try:
        active_executions = len(get_event_bus().get_active_executions())
    except RuntimeError:
        # Event bus not configured yet (e.g., during startup)
        pass

    return HealthResponse(
        status="healthy",
        timestamp=time.time(),
        active_executions=active_executions,
    )
