"""Background housekeeping for the rate limit counter store.

Expired counter rows are harmless (they are treated as absent) but would
grow the table without bound. A periodic task purges them; failures are
logged and never reach request serving.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from app.adapters.rate_limit.base import AbstractRateLimitStore

logger = logging.getLogger(__name__)


def cleanup_expired_records(
    store: AbstractRateLimitStore,
    *,
    clock: Callable[[], float] = time.time,
) -> int:
    """Purge expired counter rows once.

    Args:
        store: Counter store to purge.
        clock: Time source function returning UNIX time in seconds.

    Returns:
        int: Number of rows removed (0 when the purge failed).
    """

    try:
        removed = store.purge_expired(int(clock() * 1000))
    except Exception as exc:
        logger.error(
            "rate_limit.cleanup_failed",
            extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
        )
        return 0

    if removed:
        logger.info("rate_limit.cleanup", extra={"removed": removed})
    else:
        logger.debug("rate_limit.cleanup", extra={"removed": 0})
    return removed


async def run_periodic_cleanup(
    store: AbstractRateLimitStore,
    interval_seconds: float,
    *,
    clock: Callable[[], float] = time.time,
) -> None:
    """Purge expired rows every ``interval_seconds`` until cancelled.

    The purge runs in a worker thread so a slow database never blocks the
    event loop.
    """

    while True:
        try:
            await asyncio.sleep(interval_seconds)
            await asyncio.to_thread(cleanup_expired_records, store, clock=clock)
        except asyncio.CancelledError:
            logger.info("rate_limit.cleanup_loop_cancelled")
            break
