from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (metadata, lifespan, middleware, handlers,
routers) to improve testability. The rate limit store and the three tier
limiters are created in the lifespan and exposed on ``app.state`` so the
rate limit dependency and the operations routes share them.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from typing import AsyncIterator, Callable

from fastapi import FastAPI

from app.adapters.rate_limit.base import AbstractRateLimitStore
from app.adapters.rate_limit.factory import create_rate_limit_store
from app.api.routes import health_router, rate_limits_router
from app.core.config import settings
from app.core.errors import ConfigurationAppError
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.maintenance import run_periodic_cleanup
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.services.rate_limiter import build_rate_limiters

logger = logging.getLogger(__name__)


def _build_lifespan(
    store_override: AbstractRateLimitStore | None,
    clock: Callable[[], float],
):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Open the counter store, build limiters, start the cleanup loop.

        Configuration errors propagate so the server refuses to start rather
        than run with an undefined policy.
        """
        cfg = settings.rate_limit
        app.state.rate_limit_store = None
        app.state.rate_limiters = None
        cleanup_task: asyncio.Task | None = None
        store: AbstractRateLimitStore | None = None

        if cfg.enabled:
            try:
                store = store_override if store_override is not None else create_rate_limit_store(cfg)
                app.state.rate_limiters = build_rate_limiters(store, cfg, clock=clock)
            except ConfigurationAppError as exc:
                logger.critical(
                    "rate_limiters.init_failed",
                    extra={"error_code": exc.code, "error_message": exc.message},
                )
                if store is not None and store_override is None:
                    store.close()
                raise
            app.state.rate_limit_store = store
            cleanup_task = asyncio.create_task(
                run_periodic_cleanup(store, cfg.cleanup_interval_seconds, clock=clock)
            )
        else:
            logger.info("rate_limiting.disabled")

        try:
            yield
        finally:
            if cleanup_task is not None:
                cleanup_task.cancel()
                with suppress(asyncio.CancelledError):
                    await cleanup_task
            # Injected stores belong to the caller.
            if store is not None and store_override is None:
                store.close()
            app.state.rate_limiters = None
            app.state.rate_limit_store = None

    return lifespan


def create_app(
    *,
    store: AbstractRateLimitStore | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        store: Optional counter store to use instead of the configured one.
        clock: Time source for limiters and the cleanup job.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Rate Limit Gateway",
        description=(
            "Tiered, persistent request rate limiting for an appointment booking "
            "API. Authentication routes use the strict tier, machine-readable API "
            "routes the api tier, everything else the general tier. Rejected "
            "requests receive HTTP 429 with RATE_LIMIT_EXCEEDED and Retry-After."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=_build_lifespan(store, clock),
    )

    app.state.clock = clock

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(rate_limits_router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app
