"""Operations endpoints for inspecting and clearing rate limit counters.

Protected by ``X-API-Key`` and themselves limited by the api tier (applied
before authentication so key guessing is throttled too).
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from fastapi import APIRouter, Depends, Request

from app.adapters.rate_limit.base import AbstractRateLimitStore
from app.core.auth import verify_api_key
from app.core.errors import NotFoundAppError, StoreUnavailableError
from app.core.rate_limit import enforce_rate_limit, get_rate_limiters
from app.schemas.rate_limit import (
    ErrorResponse,
    RateLimitPurgeResponse,
    RateLimitRecordResponse,
    RateLimitResetResponse,
)
from app.services.rate_limiter import RateLimiter, RateLimitTier
from app.utils.timestamps import epoch_ms_to_iso

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/rate-limits",
    tags=["Rate limits"],
    dependencies=[
        Depends(enforce_rate_limit(RateLimitTier.API)),
        Depends(verify_api_key),
    ],
    responses={
        403: {"model": ErrorResponse, "description": "Missing or invalid API key"},
        429: {"model": ErrorResponse, "description": "API rate limit exceeded"},
        503: {"model": ErrorResponse, "description": "Counter store unavailable"},
    },
)


def _rate_limiting_disabled() -> StoreUnavailableError:
    return StoreUnavailableError(
        code="RATE_LIMITING_DISABLED",
        message="Rate limiting is disabled; no counters are kept",
    )


def get_limiter(tier: RateLimitTier, request: Request) -> RateLimiter:
    """Resolve the limiter for the ``tier`` path parameter."""
    limiters = get_rate_limiters(request)
    if not limiters:
        raise _rate_limiting_disabled()
    return limiters[tier]


def get_clock(request: Request) -> Callable[[], float]:
    return getattr(request.app.state, "clock", time.time)


def get_store(request: Request) -> AbstractRateLimitStore:
    store = getattr(request.app.state, "rate_limit_store", None)
    if store is None:
        raise _rate_limiting_disabled()
    return store


@router.get(
    "/{tier}/{client_key}",
    response_model=RateLimitRecordResponse,
    responses={404: {"model": ErrorResponse, "description": "No live record"}},
)
def get_rate_limit_record(
    tier: RateLimitTier,
    client_key: str,
    limiter: RateLimiter = Depends(get_limiter),
) -> RateLimitRecordResponse:
    """Show how much of its quota a client has used in a tier."""
    record = limiter.get(client_key)
    key = limiter.full_key(client_key)
    if record is None:
        raise NotFoundAppError(
            code="RATE_LIMIT_RECORD_NOT_FOUND",
            message="No live rate limit record for this client",
            details={"tier": tier.value},
        )

    limit = limiter.policy.points_limit
    return RateLimitRecordResponse(
        tier=tier.value,
        key=key,
        points=record.points,
        limit=limit,
        remaining=max(0, limit - record.points),
        reset_at=epoch_ms_to_iso(record.expire_at),
    )


@router.delete("/{tier}/{client_key}", response_model=RateLimitResetResponse)
def reset_rate_limit_record(
    tier: RateLimitTier,
    client_key: str,
    limiter: RateLimiter = Depends(get_limiter),
) -> RateLimitResetResponse:
    """Clear a client's quota in a tier (e.g. after a false positive)."""
    deleted = limiter.reset(client_key)
    logger.info("rate_limit.reset", extra={"tier": tier.value, "deleted": deleted})
    return RateLimitResetResponse(
        tier=tier.value,
        key=limiter.full_key(client_key),
        deleted=deleted,
    )


@router.post("/purge", response_model=RateLimitPurgeResponse)
def purge_expired_records(
    store: AbstractRateLimitStore = Depends(get_store),
    clock: Callable[[], float] = Depends(get_clock),
) -> RateLimitPurgeResponse:
    """Delete expired counter rows now instead of waiting for the periodic job."""
    removed = store.purge_expired(int(clock() * 1000))
    logger.info("rate_limit.purged", extra={"removed": removed})
    return RateLimitPurgeResponse(removed=removed)
