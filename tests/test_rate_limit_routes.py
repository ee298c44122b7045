"""Tests for the health endpoint and the rate limit operations routes."""

from __future__ import annotations

from unittest.mock import Mock

from fastapi.testclient import TestClient

from app.adapters.rate_limit.base import AbstractRateLimitStore
from app.core.app_factory import create_app
from app.core.config import settings
from app.core.errors import StoreUnavailableError

API_KEY = {"X-API-Key": "test-api-key-123"}


def _headers(ip: str = "10.9.0.1") -> dict[str, str]:
    return {**API_KEY, "X-Forwarded-For": ip}


class TestHealth:
    def test_health_body(self, make_client) -> None:
        response = make_client().get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["status"] == "healthy"
        assert body["data"]["environment"] == "testing"
        assert body["data"]["rate_limiting"] is True
        assert body["timestamp"].endswith("Z")


class TestInspectRecord:
    def test_shows_live_quota(self, make_client, sqlite_store) -> None:
        client = make_client()
        for _ in range(3):
            client.get("/health", headers={"X-Forwarded-For": "203.0.113.5"})

        response = client.get("/v1/rate-limits/general/203.0.113.5", headers=_headers())

        assert response.status_code == 200
        data = response.json()
        assert data["key"] == "general:203.0.113.5"
        assert data["points"] == 3
        assert data["limit"] == 100
        assert data["remaining"] == 97
        assert data["reset_at"].endswith("Z")

    def test_missing_record_is_404(self, make_client) -> None:
        response = make_client().get("/v1/rate-limits/strict/198.51.100.1", headers=_headers())

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "RATE_LIMIT_RECORD_NOT_FOUND"

    def test_error_response_keeps_quota_headers(self, make_client) -> None:
        client = make_client()

        first = client.get("/v1/rate-limits/api/nobody", headers=_headers())
        second = client.get("/v1/rate-limits/api/nobody", headers=_headers())

        assert first.status_code == second.status_code == 404
        assert first.headers["X-RateLimit-Limit"] == "60"
        assert first.headers["X-RateLimit-Remaining"] == "59"
        assert second.headers["X-RateLimit-Remaining"] == "58"
        assert second.headers["X-RateLimit-Reset"].endswith("Z")

    def test_unknown_tier_is_validation_error(self, make_client) -> None:
        response = make_client().get("/v1/rate-limits/premium/198.51.100.1", headers=_headers())

        assert response.status_code == 400
        body = response.json()
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert body["error"]["details"][0]["field"] == "path.tier"


class TestResetRecord:
    def test_reset_restores_quota(self, make_client, monkeypatch) -> None:
        monkeypatch.setattr(settings.rate_limit, "general_points", 1)
        client = make_client()
        user = {"X-Forwarded-For": "203.0.113.6"}
        client.get("/health", headers=user)
        assert client.get("/health", headers=user).status_code == 429

        response = client.delete("/v1/rate-limits/general/203.0.113.6", headers=_headers())

        assert response.status_code == 200
        assert response.json() == {"tier": "general", "key": "general:203.0.113.6", "deleted": True}
        assert client.get("/health", headers=user).status_code == 200

    def test_reset_missing_record(self, make_client) -> None:
        response = make_client().delete("/v1/rate-limits/api/203.0.113.7", headers=_headers())

        assert response.status_code == 200
        assert response.json()["deleted"] is False


class TestPurge:
    def test_purge_removes_expired_rows_once(self, make_client, clock) -> None:
        client = make_client()
        client.get("/health", headers={"X-Forwarded-For": "203.0.113.8"})
        clock.advance(3600)

        first = client.post("/v1/rate-limits/purge", headers=_headers("10.9.0.2"))
        second = client.post("/v1/rate-limits/purge", headers=_headers("10.9.0.2"))

        # The api-tier record of the first purge call is still live.
        assert first.json() == {"removed": 1}
        assert second.json() == {"removed": 0}


class TestProtection:
    def test_requires_api_key(self, make_client) -> None:
        response = make_client().post("/v1/rate-limits/purge")

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "MISSING_API_KEY"

    def test_rejects_invalid_api_key(self, make_client) -> None:
        response = make_client().post("/v1/rate-limits/purge", headers={"X-API-Key": "nope"})

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "INVALID_API_KEY"
        assert response.headers["X-RateLimit-Remaining"] == "59"

    def test_api_tier_throttles_before_auth(self, make_client, monkeypatch) -> None:
        monkeypatch.setattr(settings.rate_limit, "api_points", 2)
        client = make_client()
        headers = {"X-API-Key": "guess", "X-Forwarded-For": "10.9.0.3"}

        statuses = [client.post("/v1/rate-limits/purge", headers=headers).status_code for _ in range(3)]

        assert statuses == [403, 403, 429]
        rejected = client.post("/v1/rate-limits/purge", headers=headers)
        assert rejected.json()["error"]["message"] == "API rate limit exceeded, please try again later"

    def test_store_failure_is_503(self, rate_limit_settings, clock) -> None:
        store = Mock(spec=AbstractRateLimitStore)
        store.increment_and_get.side_effect = StoreUnavailableError(
            code="RATE_LIMIT_STORE_UNAVAILABLE", message="Rate limit store failed during increment"
        )
        store.purge_expired.side_effect = StoreUnavailableError(
            code="RATE_LIMIT_STORE_UNAVAILABLE", message="Rate limit store failed during purge"
        )

        with TestClient(create_app(store=store, clock=clock)) as client:
            response = client.post("/v1/rate-limits/purge", headers=_headers())

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "RATE_LIMIT_STORE_UNAVAILABLE"

    def test_disabled_rate_limiting_is_503(self, rate_limit_settings, monkeypatch) -> None:
        monkeypatch.setattr(settings.rate_limit, "enabled", False)

        with TestClient(create_app()) as client:
            response = client.post("/v1/rate-limits/purge", headers=_headers())

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "RATE_LIMITING_DISABLED"


def test_openapi_documents_rate_limit_headers(make_client) -> None:
    schema = make_client().get("/openapi.json").json()

    health_responses = schema["paths"]["/health"]["get"]["responses"]
    assert "X-RateLimit-Remaining" in health_responses["200"]["headers"]
    assert schema["paths"]["/health"]["get"]["security"] == []
    purge = schema["paths"]["/v1/rate-limits/purge"]["post"]["responses"]
    assert "429" in purge
