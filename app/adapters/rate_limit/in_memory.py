"""In-memory rate limit counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.rate_limit.base import AbstractRateLimitStore, StoreRecord


@dataclass
class _CounterState:
    points: int
    expire_at: int


class InMemoryRateLimitStore(AbstractRateLimitStore):
    """Counter store keeping one windowed record per key in a dict.

    Intended for tests and single-process deployments that do not need
    counters to survive a restart.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the in-memory store.

        Args:
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _CounterState] = {}

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _live_state(self, key: str, now_ms: int) -> _CounterState | None:
        state = self._state_by_key.get(key)
        if state is None or state.expire_at <= now_ms:
            return None
        return state

    def increment_and_get(self, key: str, window_duration_seconds: int) -> StoreRecord:
        now_ms = self._now_ms()
        with self._lock:
            state = self._live_state(key, now_ms)
            if state is None:
                state = _CounterState(
                    points=0,
                    expire_at=now_ms + window_duration_seconds * 1000,
                )
                self._state_by_key[key] = state
            state.points += 1
            return StoreRecord(points=state.points, expire_at=state.expire_at)

    def extend_expiry(self, key: str, until_ms: int, *, expected_expire_at: int) -> int | None:
        with self._lock:
            state = self._state_by_key.get(key)
            if state is None or state.expire_at != expected_expire_at:
                return None
            state.expire_at = max(state.expire_at, until_ms)
            return state.expire_at

    def get(self, key: str) -> StoreRecord | None:
        with self._lock:
            state = self._live_state(key, self._now_ms())
            if state is None:
                return None
            return StoreRecord(points=state.points, expire_at=state.expire_at)

    def purge_expired(self, now_ms: int) -> int:
        with self._lock:
            expired = [key for key, state in self._state_by_key.items() if state.expire_at < now_ms]
            for key in expired:
                del self._state_by_key[key]
            return len(expired)

    def reset(self, key: str) -> bool:
        with self._lock:
            return self._state_by_key.pop(key, None) is not None
