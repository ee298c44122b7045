"""Policy-driven rate limiter on top of a counter store.

One ``RateLimiter`` class serves every tier; tiers differ only in their
``RateLimiterPolicy``. All tiers share one store and are isolated from each
other by the policy's key prefix.

Block strategy: the request that first exceeds the ceiling pushes the
record's expiry out to ``now + block_duration_seconds``, so a violator waits
out the block instead of just the remainder of the window. Later rejected
requests in the same block do not extend it further.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from app.adapters.rate_limit.base import AbstractRateLimitStore, StoreRecord
from app.core.config import RateLimitSettings
from app.core.errors import ConfigurationAppError

logger = logging.getLogger(__name__)


class RateLimitTier(str, Enum):
    """Route classes with their own quota."""

    GENERAL = "general"
    STRICT = "strict"
    API = "api"


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of ``RateLimiter.consume``.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        key: Full limiter key (``<prefix>:<client>``).
        limit: Max points per window.
        remaining: Remaining points in the current window (0 when blocked).
        reset_at: UNIX epoch milliseconds when the current window (or block) ends.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    key: str
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None = None


@dataclass(frozen=True)
class RateLimiterPolicy:
    """Immutable limiter configuration.

    Attributes:
        key_prefix: Namespace prepended to client keys in the store.
        points_limit: Points allowed per window.
        window_duration_seconds: Window length.
        block_duration_seconds: How long a client stays blocked after first
            exceeding the ceiling.
        exceeded_message: Human-readable message for rejected requests.
    """

    key_prefix: str
    points_limit: int
    window_duration_seconds: int
    block_duration_seconds: int
    exceeded_message: str = "Too many requests, please try again later"

    def __post_init__(self) -> None:
        if not self.key_prefix or ":" in self.key_prefix:
            raise ConfigurationAppError(
                code="RATE_LIMIT_INVALID_POLICY",
                message="key_prefix must be a non-empty string without ':'",
                details={"setting": "key_prefix", "value": self.key_prefix},
            )
        for name in ("points_limit", "window_duration_seconds", "block_duration_seconds"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ConfigurationAppError(
                    code="RATE_LIMIT_INVALID_POLICY",
                    message=f"{name} must be an integer >= 1",
                    details={"setting": f"{self.key_prefix}.{name}", "value": value},
                )


class RateLimiter:
    """Applies a ``RateLimiterPolicy`` to a shared counter store."""

    def __init__(
        self,
        policy: RateLimiterPolicy,
        store: AbstractRateLimitStore,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._policy = policy
        self._store = store
        self._clock = clock

    @property
    def policy(self) -> RateLimiterPolicy:
        return self._policy

    def full_key(self, client_key: str) -> str:
        return f"{self._policy.key_prefix}:{client_key}"

    def consume(self, client_key: str) -> RateLimitResult:
        """Spend one point for ``client_key`` and decide whether it may proceed.

        Exceeding the limit is reported through ``RateLimitResult.allowed``,
        not raised.

        Args:
            client_key: Caller identity (e.g. IP address).

        Returns:
            RateLimitResult with the decision and quota metadata.

        Raises:
            StoreUnavailableError: If the store cannot be updated.
        """
        key = self.full_key(client_key)
        limit = self._policy.points_limit
        record = self._store.increment_and_get(key, self._policy.window_duration_seconds)

        if record.points <= limit:
            return RateLimitResult(
                allowed=True,
                key=key,
                limit=limit,
                remaining=limit - record.points,
                reset_at=record.expire_at,
            )

        now_ms = int(self._clock() * 1000)
        reset_at = record.expire_at
        if record.points == limit + 1:
            reset_at = self._start_block(key, record, now_ms)

        retry_after = max(1, math.ceil((reset_at - now_ms) / 1000))
        return RateLimitResult(
            allowed=False,
            key=key,
            limit=limit,
            remaining=0,
            reset_at=reset_at,
            retry_after_seconds=retry_after,
        )

    def _start_block(self, key: str, record: StoreRecord, now_ms: int) -> int:
        block_until = now_ms + self._policy.block_duration_seconds * 1000
        extended = self._store.extend_expiry(
            key, block_until, expected_expire_at=record.expire_at
        )
        # None: the row was reset or a new window started since the increment.
        return extended if extended is not None else record.expire_at

    def get(self, client_key: str) -> StoreRecord | None:
        return self._store.get(self.full_key(client_key))

    def reset(self, client_key: str) -> bool:
        """Forget the quota consumed by ``client_key`` for this tier."""
        return self._store.reset(self.full_key(client_key))


def build_policies(rate_limit_settings: RateLimitSettings) -> dict[RateLimitTier, RateLimiterPolicy]:
    """Build the general/strict/api policies from settings.

    Args:
        rate_limit_settings: Resolved rate limit settings.

    Returns:
        Mapping of tier to its policy.

    Raises:
        ConfigurationAppError: If any configured value is invalid.
    """

    duration = rate_limit_settings.duration
    return {
        RateLimitTier.GENERAL: RateLimiterPolicy(
            key_prefix=RateLimitTier.GENERAL.value,
            points_limit=rate_limit_settings.general_points,
            window_duration_seconds=duration,
            block_duration_seconds=duration,
            exceeded_message="Too many requests, please try again later",
        ),
        RateLimitTier.STRICT: RateLimiterPolicy(
            key_prefix=RateLimitTier.STRICT.value,
            points_limit=rate_limit_settings.strict_points,
            window_duration_seconds=duration,
            block_duration_seconds=duration * rate_limit_settings.strict_block_multiplier,
            exceeded_message="Too many authentication attempts, please try again later",
        ),
        RateLimitTier.API: RateLimiterPolicy(
            key_prefix=RateLimitTier.API.value,
            points_limit=rate_limit_settings.api_points,
            window_duration_seconds=duration,
            block_duration_seconds=duration,
            exceeded_message="API rate limit exceeded, please try again later",
        ),
    }


def build_rate_limiters(
    store: AbstractRateLimitStore,
    rate_limit_settings: RateLimitSettings,
    *,
    clock: Callable[[], float] = time.time,
) -> dict[RateLimitTier, RateLimiter]:
    """Create one limiter per tier, all sharing ``store``."""

    limiters = {
        tier: RateLimiter(policy, store, clock=clock)
        for tier, policy in build_policies(rate_limit_settings).items()
    }
    logger.info(
        "rate_limiters.initialised",
        extra={
            "tiers": {
                tier.value: {
                    "points": limiter.policy.points_limit,
                    "window_s": limiter.policy.window_duration_seconds,
                    "block_s": limiter.policy.block_duration_seconds,
                }
                for tier, limiter in limiters.items()
            },
        },
    )
    return limiters
