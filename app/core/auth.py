"""API key authentication for the operations routes.

Keys are validated against a comma-separated list from environment variables
(``APP_API_KEYS``). Failures raise ``AuthenticationAppError`` so they render
in the standard error envelope with HTTP 403.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Header

from app.core.config import settings
from app.core.errors import AuthenticationAppError
from app.core.logging import fingerprint

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Args:
        keys_string: Comma-separated string of API keys, or None.

    Returns:
        Set of trimmed, non-empty API keys.

    Examples:
        >>> parse_api_keys("key1, key2 , key3 ")
        {'key1', 'key2', 'key3'}
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def validate_api_key(provided_key: str | None) -> None:
    """Validate that provided API key matches configured keys.

    Pure validation logic without FastAPI dependencies for easy testing.

    Args:
        provided_key: API key to validate.

    Raises:
        AuthenticationAppError: If the key is missing or invalid, or if
            authentication is required but no keys are configured.
    """
    if not settings.app.api_key_required:
        return

    valid_keys = parse_api_keys(settings.app.api_keys)
    if not valid_keys:
        logger.error(
            "api_key_validation_failed",
            extra={"reason": "api_keys_not_configured"},
        )
        raise AuthenticationAppError(
            code="API_KEYS_NOT_CONFIGURED",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false"},
        )

    if not provided_key:
        logger.warning("api_key_validation_failed", extra={"reason": "missing_api_key"})
        raise AuthenticationAppError(
            code="MISSING_API_KEY",
            message="Missing API key. Provide X-API-Key header.",
        )

    if provided_key not in valid_keys:
        logger.warning(
            "api_key_validation_failed",
            extra={"reason": "invalid_api_key", "api_key_hash": fingerprint(provided_key)},
        )
        raise AuthenticationAppError(
            code="INVALID_API_KEY",
            message="Invalid or missing API key",
        )


async def verify_api_key(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency for API key authentication.

    Usage:
        @router.delete("/protected", dependencies=[Depends(verify_api_key)])
        async def protected_endpoint():
            ...

    Args:
        x_api_key: API key from X-API-Key header (injected by FastAPI).

    Raises:
        AuthenticationAppError: 403 Forbidden if authentication fails.
    """
    validate_api_key(x_api_key)
    if x_api_key:
        logger.debug("auth.success", extra={"api_key_hash": fingerprint(x_api_key)})
