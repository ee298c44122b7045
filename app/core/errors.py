"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    hint: str
    retryAfter: int
    tier: str
    key: str
    cause: str
    setting: str
    value: Any
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when request input validation fails."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class NotFoundAppError(AppError):
    """Raised when a requested resource does not exist."""


class ConfigurationAppError(AppError):
    """Raised when settings are invalid; fatal at startup."""


class StoreUnavailableError(AppError):
    """Raised when the rate limit counter store cannot be read or written."""


@dataclass
class RateLimitExceededError(AppError):
    """Raised by the rate limit dependency when a client exceeds its quota.

    Attributes:
        headers: Rate limit headers to attach to the 429 response.
    """

    headers: dict[str, str] = field(default_factory=dict)
