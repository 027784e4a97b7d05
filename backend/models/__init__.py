"""Models module for Pydantic schemas.

This module exposes all request/response models used by the API.
"""

from models.schemas import (
    ErrorDetail,
    HealthResponse,
    ValidateConnectionRequest,
    ValidateWorkflowRequest,
)

__all__ = [
    "ErrorDetail",
    "HealthResponse",
    "ValidateConnectionRequest",
    "ValidateWorkflowRequest",
]
