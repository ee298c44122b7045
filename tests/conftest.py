"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are set before any ``app`` import so the global
settings object is built from test values.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("LOG_FORMAT", "plain")

from typing import Callable, Iterator  # noqa: E402

import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.adapters.rate_limit.sqlite_store import SqliteRateLimitStore  # noqa: E402
from app.core.app_factory import create_app  # noqa: E402
from app.core.config import settings  # noqa: E402


class FakeClock:
    """Manually advanced time source returning UNIX seconds."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sqlite_store(tmp_path, clock: FakeClock) -> Iterator[SqliteRateLimitStore]:
    store = SqliteRateLimitStore(str(tmp_path / "ratelimit.sqlite"), clock=clock)
    yield store
    store.close()


@pytest.fixture
def rate_limit_settings(monkeypatch: pytest.MonkeyPatch):
    """Enable rate limiting with the production defaults for the test."""
    monkeypatch.setattr(settings.rate_limit, "enabled", True)
    monkeypatch.setattr(settings.rate_limit, "general_points", 100)
    monkeypatch.setattr(settings.rate_limit, "strict_points", 5)
    monkeypatch.setattr(settings.rate_limit, "api_points", 60)
    monkeypatch.setattr(settings.rate_limit, "duration", 60)
    monkeypatch.setattr(settings.rate_limit, "strict_block_multiplier", 2)
    return settings.rate_limit


@pytest.fixture
def make_client(
    sqlite_store: SqliteRateLimitStore,
    clock: FakeClock,
    rate_limit_settings,
) -> Iterator[Callable[..., TestClient]]:
    """Build a started TestClient whose limiters use the temp SQLite store.

    The optional ``configure`` callback can add routes before startup.
    """
    clients: list[TestClient] = []

    def _make(configure: Callable[[FastAPI], None] | None = None) -> TestClient:
        app = create_app(store=sqlite_store, clock=clock)
        if configure is not None:
            configure(app)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)
