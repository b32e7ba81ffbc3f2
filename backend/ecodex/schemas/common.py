"""
EcoDex Backend - Shared Response Schemas
==========================================

What:  Error and health response models shared by every route module.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Fields:
        error: Machine-readable error kind (e.g., "oracle_unavailable")
        message: Human-readable description for display to users
        details: Extra context (raw oracle reply, failed ledger stage, ...)
        request_id: Correlation ID for tracing this error in server logs

    Example:
        {
            "error": "malformed_oracle_response",
            "message": "The species identification service returned an unreadable response",
            "details": {"raw_response": "I think this is a fern!"},
            "request_id": "3f2a9c1d"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Health check response showing service and dependency status."""
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    oracle: str = Field(description="Species oracle status: available, unavailable, circuit_open")
    uptime_seconds: float = Field(description="Seconds since service started")
