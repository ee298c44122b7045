"""Factory for creating the configured rate limit counter store."""

from app.adapters.rate_limit.base import AbstractRateLimitStore
from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from app.adapters.rate_limit.sqlite_store import SqliteRateLimitStore
from app.core.config import RateLimitSettings, settings
from app.core.errors import ConfigurationAppError


def create_rate_limit_store(
    rate_limit_settings: RateLimitSettings | None = None,
) -> AbstractRateLimitStore:
    """Factory function to instantiate the counter store based on backend.

    Args:
        rate_limit_settings: Optional settings; defaults to global settings.

    Returns:
        AbstractRateLimitStore: Configured store instance.

    Raises:
        ConfigurationAppError: If the backend is unknown or its storage
            cannot be opened.
    """
    cfg = rate_limit_settings or settings.rate_limit
    backend = cfg.backend.lower()

    if backend == "sqlite":
        return SqliteRateLimitStore(
            cfg.db_path,
            timeout_seconds=cfg.db_timeout_seconds,
        )

    if backend == "memory":
        return InMemoryRateLimitStore()

    raise ConfigurationAppError(
        code="RATE_LIMIT_UNKNOWN_BACKEND",
        message=f"Unknown rate limit backend: '{backend}'. Supported backends: sqlite, memory",
        details={"setting": "RATE_LIMIT_BACKEND", "value": backend},
    )
