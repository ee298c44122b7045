"""SQLAlchemy model for rate limit counters."""

from __future__ import annotations

from sqlalchemy import BigInteger, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for the counter store tables."""


class RateLimitRecordModel(Base):
    """Points consumed per limiter key within the current window."""

    __tablename__ = "rate_limits"
    __table_args__ = (Index("idx_expire", "expire"),)

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Epoch milliseconds; NULL is never written by this service.
    expire: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
