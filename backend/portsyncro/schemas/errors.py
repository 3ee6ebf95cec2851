# backend/portsyncro/schemas/errors.py
"""
Pydantic schemas for error responses.

Most endpoints share ErrorDetail (used by the global exception handlers in
main.py). The price endpoint keeps its own 429 and 500 shapes, which
existing clients parse.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    """Standard error response format."""

    error: str = Field(
        ...,
        description="Error type/code (e.g., 'SnapshotNotFoundError')"
    )
    message: str = Field(
        ...,
        description="Human-readable error message"
    )
    details: dict | None = Field(
        default=None,
        description="Additional error context (optional)"
    )


class ValidationErrorDetail(BaseModel):
    """Validation error response format (422 responses)."""

    error: str = Field(default="ValidationError")
    message: str = Field(default="Request validation failed")
    details: list[dict] = Field(
        ...,
        description="List of validation errors"
    )


# =============================================================================
# PRICE API SHAPES
# =============================================================================

class PriceRateLimitResponse(BaseModel):
    """Body of a 429 from the price endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    retry_after: int = Field(..., alias="retryAfter")
    error: str = "RATE_LIMIT_EXCEEDED"
    identifier: str = Field(..., description="Caller identity that was limited")


class PriceErrorResponse(BaseModel):
    """Body of a 400 or 500 from the price endpoint. Never carries a stack trace."""

    message: str
    prices: dict = Field(default_factory=dict)
    timestamp: datetime
