"""Pydantic schemas for rate limit operations and error responses."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class RateLimitRecordResponse(BaseModel):
    """Live quota state of one client in one tier."""

    tier: str = Field(..., description="Limiter tier: general, strict or api.")
    key: str = Field(..., description="Full store key (<tier>:<client>).")
    points: int = Field(..., description="Points consumed in the current window.", ge=0)
    limit: int = Field(..., description="Points allowed per window.", ge=1)
    remaining: int = Field(..., description="Points left before requests are rejected.", ge=0)
    reset_at: str = Field(..., description="ISO-8601 time the window (or block) ends.")


class RateLimitResetResponse(BaseModel):
    """Outcome of clearing a client's quota."""

    tier: str
    key: str
    deleted: bool = Field(..., description="Whether a record existed and was removed.")


class RateLimitPurgeResponse(BaseModel):
    """Outcome of an on-demand purge of expired records."""

    removed: int = Field(..., description="Number of expired records deleted.", ge=0)


class HealthData(BaseModel):
    status: Literal["healthy"] = "healthy"
    environment: str
    rate_limiting: bool = Field(..., description="Whether rate limiting is enabled.")


class HealthResponse(BaseModel):
    success: Literal[True] = True
    data: HealthData
    timestamp: str


class ErrorBody(BaseModel):
    code: str = Field(..., description="Machine-readable error code, e.g. RATE_LIMIT_EXCEEDED.")
    message: str
    details: Any | None = Field(
        default=None,
        description="Structured context; rate limit errors carry {'retryAfter': seconds}.",
    )
    request_id: str | None = None


class ErrorResponse(BaseModel):
    """Envelope returned by every error response."""

    success: Literal[False] = False
    error: ErrorBody
    timestamp: str
