"""Rate limit counter store adapters.

This package provides a small abstraction layer so limiters can run against a
durable SQLite table or a process-local dict without changing the policy or
HTTP layers.
"""

from app.adapters.rate_limit.base import AbstractRateLimitStore, StoreRecord
from app.adapters.rate_limit.factory import create_rate_limit_store
from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from app.adapters.rate_limit.sqlite_store import SqliteRateLimitStore

__all__ = [
    "AbstractRateLimitStore",
    "InMemoryRateLimitStore",
    "SqliteRateLimitStore",
    "StoreRecord",
    "create_rate_limit_store",
]
