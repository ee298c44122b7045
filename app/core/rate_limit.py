"""Rate limiting dependency for FastAPI routes.

This module wires the tiered limiters into the HTTP layer.

Design goals:
- Minimal coupling: routers pick a tier with ``Depends(enforce_rate_limit(tier))``.
- Injected state: limiters are built at startup and stored on ``app.state``
  so tests can swap in limiters backed by a temporary store.
- Fail-open: a broken counter store never takes the API down; the request is
  served without rate limit headers and a warning is logged.

Client identity is the first ``X-Forwarded-For`` entry, then ``X-Real-IP``,
then the socket peer address. Proxy headers are trusted as-is, so the service
must sit behind a reverse proxy that overwrites them.
"""

from __future__ import annotations

import logging
from typing import Callable, Mapping

from fastapi import Request, Response

from app.core.config import settings
from app.core.errors import RateLimitExceededError, StoreUnavailableError
from app.core.logging import fingerprint
from app.services.rate_limiter import RateLimiter, RateLimitResult, RateLimitTier
from app.utils.timestamps import epoch_ms_to_iso

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"
LOOPBACK_CLIENTS = frozenset({"127.0.0.1", "::1", "localhost"})


def get_client_key(request: Request) -> str:
    """Derive the rate limit identity for the caller.

    Args:
        request: FastAPI request.

    Returns:
        str: Client address, or ``"unknown"`` when none is available.
    """

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip

    if request.client and request.client.host:
        return request.client.host

    return UNKNOWN_CLIENT


def build_rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Translate a consume result into response headers.

    Args:
        result: Outcome of ``RateLimiter.consume``.

    Returns:
        dict: ``X-RateLimit-*`` headers, plus ``Retry-After`` when blocked.
    """

    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": epoch_ms_to_iso(result.reset_at),
    }
    if not result.allowed and result.retry_after_seconds is not None:
        headers["Retry-After"] = str(result.retry_after_seconds)
    return headers


def get_rate_limiters(request: Request) -> Mapping[RateLimitTier, RateLimiter] | None:
    """Return the limiters registered on the application, if any."""

    return getattr(request.app.state, "rate_limiters", None)


def _is_exempt(client_key: str) -> bool:
    return settings.app_env == "development" and client_key in LOOPBACK_CLIENTS


def enforce_rate_limit(tier: RateLimitTier) -> Callable[[Request, Response], None]:
    """Build a FastAPI dependency enforcing the quota of ``tier``.

    The dependency is synchronous so FastAPI runs it in the threadpool; a
    client disconnect does not interrupt a consume that already started.
    Headers are set on the injected ``Response``, which FastAPI merges into
    the route's response unless the route returns a ``Response`` itself.

    Args:
        tier: Which limiter applies to the routes using this dependency.

    Returns:
        Callable: Dependency raising ``RateLimitExceededError`` (HTTP 429)
            when the client is over quota.
    """

    def dependency(request: Request, response: Response) -> None:
        if not settings.rate_limit.enabled:
            return

        limiters = get_rate_limiters(request)
        if not limiters:
            return

        client_key = get_client_key(request)
        if _is_exempt(client_key):
            return

        limiter = limiters[tier]
        key_hash = fingerprint(limiter.full_key(client_key))

        try:
            result = limiter.consume(client_key)
        except StoreUnavailableError as exc:
            logger.warning(
                "rate_limit.store_unavailable",
                extra={
                    "tier": tier.value,
                    "key_hash": key_hash,
                    "error_code": exc.code,
                    "cause": repr(exc.__cause__ or exc),
                },
            )
            return

        headers = build_rate_limit_headers(result)
        if result.allowed:
            logger.debug(
                "rate_limit.allowed",
                extra={
                    "tier": tier.value,
                    "key_hash": key_hash,
                    "limit": result.limit,
                    "remaining": result.remaining,
                },
            )
            response.headers.update(headers)
            # Error responses rendered after this point are new Response
            # objects; the request middleware copies these onto them.
            request.state.rate_limit_headers = headers
            return

        retry_after = result.retry_after_seconds or 0
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "tier": tier.value,
                "key_hash": key_hash,
                "limit": result.limit,
                "retry_after_s": retry_after,
            },
        )
        raise RateLimitExceededError(
            code="RATE_LIMIT_EXCEEDED",
            message=limiter.policy.exceeded_message,
            details={"retryAfter": retry_after},
            headers=headers,
        )

    dependency.__name__ = f"enforce_{tier.value}_rate_limit"
    return dependency
