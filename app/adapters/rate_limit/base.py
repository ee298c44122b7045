"""Rate limit store interfaces.

Limiters depend on this abstraction (not the concrete implementation) so the
counter storage can be swapped (SQLite file, in-memory) without touching the
policy or HTTP layers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class StoreRecord:
    """Counter state for one limiter key.

    Attributes:
        points: Points consumed in the current window.
        expire_at: UNIX epoch milliseconds when the window (or block) ends.
    """

    points: int
    expire_at: int


class AbstractRateLimitStore(ABC):
    """Interface for durable, key-partitioned counter stores.

    Implementations raise ``StoreUnavailableError`` when the backing storage
    cannot be read or written.
    """

    @abstractmethod
    def increment_and_get(self, key: str, window_duration_seconds: int) -> StoreRecord:
        """Atomically consume one point for ``key``.

        Starts a fresh window (points=1) when no live record exists, otherwise
        increments points and leaves the expiry unchanged.
        """
        raise NotImplementedError

    @abstractmethod
    def extend_expiry(self, key: str, until_ms: int, *, expected_expire_at: int) -> int | None:
        """Move the expiry of ``key`` forward to ``until_ms`` (never backward).

        Compare-and-set: the record is only touched while its expiry still
        equals ``expected_expire_at``, the value the caller observed from
        ``increment_and_get``. A window restarted in between is left alone.

        Returns:
            The resulting expiry, or None if the key has no record or the
            record no longer matches ``expected_expire_at``.
        """
        raise NotImplementedError

    @abstractmethod
    def get(self, key: str) -> StoreRecord | None:
        """Return the live record for ``key`` or None when absent/stale."""
        raise NotImplementedError

    @abstractmethod
    def purge_expired(self, now_ms: int) -> int:
        """Delete records whose expiry is before ``now_ms``; return the count."""
        raise NotImplementedError

    @abstractmethod
    def reset(self, key: str) -> bool:
        """Delete the record for ``key``; return whether one existed."""
        raise NotImplementedError

    def close(self) -> None:
        """Release any resources held by the store."""
