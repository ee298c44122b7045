"""SQLite-backed rate limit counter store.

Counters live in a single ``rate_limits`` table shared by every limiter tier;
tiers are isolated by the key prefix. Consumption is one
``INSERT ... ON CONFLICT DO UPDATE ... RETURNING`` statement so concurrent
requests for the same key never lose an increment, including across worker
processes sharing the database file.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator

from sqlalchemy import Engine, case, create_engine, delete, or_, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from app.adapters.rate_limit.base import AbstractRateLimitStore, StoreRecord
from app.adapters.rate_limit.models import Base, RateLimitRecordModel
from app.core.errors import ConfigurationAppError, StoreUnavailableError

logger = logging.getLogger(__name__)

MEMORY_DB_PATH = ":memory:"

_table = RateLimitRecordModel.__table__


def _create_engine(db_path: str, timeout_seconds: float) -> Engine:
    """Create the SQLAlchemy engine for a file path or ``:memory:``.

    Args:
        db_path: SQLite database file path, or ``:memory:``.
        timeout_seconds: How long a connection waits on a locked database.

    Returns:
        Engine: Configured engine.
    """

    if db_path == MEMORY_DB_PATH:
        # One shared connection, otherwise every pooled connection would see
        # its own empty database.
        return create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False, "timeout": timeout_seconds},
            poolclass=StaticPool,
        )

    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(
        f"sqlite:///{path}",
        connect_args={"timeout": timeout_seconds},
    )


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Translate driver failures into ``StoreUnavailableError``."""

    try:
        yield
    except SQLAlchemyError as exc:
        raise StoreUnavailableError(
            code="RATE_LIMIT_STORE_UNAVAILABLE",
            message=f"Rate limit store failed during {operation}",
            details={"cause": type(exc).__name__},
        ) from exc


class SqliteRateLimitStore(AbstractRateLimitStore):
    """Durable counter store on SQLite via SQLAlchemy Core statements."""

    def __init__(
        self,
        db_path: str,
        *,
        timeout_seconds: float = 5.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Open (and if needed create) the counter database.

        Args:
            db_path: SQLite file path or ``:memory:``.
            timeout_seconds: Lock wait bound for each statement.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ConfigurationAppError: If the path is empty or the database
                cannot be opened.
        """
        if not db_path or not db_path.strip():
            raise ConfigurationAppError(
                code="RATE_LIMIT_DB_PATH_MISSING",
                message="Rate limit storage path is not configured",
                details={"setting": "RATE_LIMIT_DB_PATH"},
            )

        self._clock = clock
        self._timeout_seconds = timeout_seconds
        # SQLite allows a single writer; serialize in-process writers so
        # threads queue on the lock instead of on SQLITE_BUSY.
        self._lock = threading.Lock()
        try:
            self._engine = _create_engine(db_path, timeout_seconds)
            Base.metadata.create_all(self._engine)
        except (OSError, SQLAlchemyError) as exc:
            raise ConfigurationAppError(
                code="RATE_LIMIT_DB_OPEN_FAILED",
                message=f"Unable to open rate limit database at {db_path}",
                details={"setting": "RATE_LIMIT_DB_PATH", "cause": type(exc).__name__},
            ) from exc

        logger.info("rate_limit_store.opened", extra={"db_path": db_path})

    @property
    def engine(self) -> Engine:
        return self._engine

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    @contextmanager
    def _locked(self, operation: str) -> Iterator[None]:
        """Hold the store lock for at most the configured busy timeout.

        Raises:
            StoreUnavailableError: If the lock is not acquired in time.
        """
        if not self._lock.acquire(timeout=self._timeout_seconds):
            logger.warning("rate_limit_store.lock_timeout", extra={"operation": operation})
            raise StoreUnavailableError(
                code="RATE_LIMIT_STORE_UNAVAILABLE",
                message=f"Rate limit store failed during {operation}",
                details={"cause": "LockTimeout"},
            )
        try:
            yield
        finally:
            self._lock.release()

    def increment_and_get(self, key: str, window_duration_seconds: int) -> StoreRecord:
        now_ms = self._now_ms()
        stmt = sqlite_insert(_table).values(
            key=key,
            points=1,
            expire=now_ms + window_duration_seconds * 1000,
        )
        stale = or_(_table.c.expire.is_(None), _table.c.expire <= now_ms)
        stmt = stmt.on_conflict_do_update(
            index_elements=[_table.c.key],
            set_={
                "points": case((stale, 1), else_=_table.c.points + 1),
                "expire": case((stale, stmt.excluded.expire), else_=_table.c.expire),
            },
        ).returning(_table.c.points, _table.c.expire)

        with _store_errors("increment"), self._locked("increment"), self._engine.begin() as conn:
            points, expire = conn.execute(stmt).one()
        return StoreRecord(points=points, expire_at=expire)

    def extend_expiry(self, key: str, until_ms: int, *, expected_expire_at: int) -> int | None:
        # Matching on the observed expiry keeps a late block from stretching
        # a window another request restarted in the meantime.
        stmt = (
            update(_table)
            .where(_table.c.key == key, _table.c.expire == expected_expire_at)
            .values(expire=max(expected_expire_at, until_ms))
            .returning(_table.c.expire)
        )
        with _store_errors("extend_expiry"), self._locked("extend_expiry"), self._engine.begin() as conn:
            return conn.execute(stmt).scalar_one_or_none()

    def get(self, key: str) -> StoreRecord | None:
        stmt = select(_table.c.points, _table.c.expire).where(
            _table.c.key == key,
            _table.c.expire > self._now_ms(),
        )
        with _store_errors("get"), self._locked("get"), self._engine.connect() as conn:
            row = conn.execute(stmt).one_or_none()
        if row is None:
            return None
        return StoreRecord(points=row.points, expire_at=row.expire)

    def purge_expired(self, now_ms: int) -> int:
        stmt = delete(_table).where(
            _table.c.expire.is_not(None),
            _table.c.expire < now_ms,
        )
        with _store_errors("purge"), self._locked("purge"), self._engine.begin() as conn:
            return conn.execute(stmt).rowcount

    def reset(self, key: str) -> bool:
        stmt = delete(_table).where(_table.c.key == key)
        with _store_errors("reset"), self._locked("reset"), self._engine.begin() as conn:
            return conn.execute(stmt).rowcount > 0

    def close(self) -> None:
        self._engine.dispose()
        logger.info("rate_limit_store.closed")
