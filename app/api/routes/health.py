from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.config import settings
from app.core.rate_limit import enforce_rate_limit
from app.schemas.rate_limit import HealthData, HealthResponse
from app.services.rate_limiter import RateLimitTier
from app.utils.timestamps import utc_now_iso

router = APIRouter(
    tags=["Health"],
    dependencies=[Depends(enforce_rate_limit(RateLimitTier.GENERAL))],
)


@router.get("/health", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Health check endpoint.

    Used by load balancers and monitoring systems to determine service
    health. Counts against the general rate limit tier.

    Returns:
        HealthResponse: Status, environment and whether rate limiting is on.
    """

    return HealthResponse(
        data=HealthData(
            environment=settings.app_env,
            rate_limiting=settings.rate_limit.enabled,
        ),
        timestamp=utc_now_iso(),
    )
