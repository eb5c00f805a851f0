"""Tests for the rate limited health endpoints."""

import json
from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient

from app.adapters.rate_limit.base import RateLimitConfig
from app.core.app_factory import create_app
from app.core.config import settings
from app.core.logging import hash_identifier
from app.core.rate_limit import RateLimitRegistry

API_POLICIES = {
    "general": RateLimitConfig(max_requests=100, window_ms=60_000),
    "health:get": RateLimitConfig(max_requests=2, window_ms=900_000),
    "health:post": RateLimitConfig(max_requests=1, window_ms=900_000),
}


@pytest.fixture
def registry() -> RateLimitRegistry:
    return RateLimitRegistry.from_settings(
        settings.app, clock_ms=Mock(return_value=0), api_policies=API_POLICIES
    )


@pytest.fixture
def client(registry: RateLimitRegistry) -> TestClient:
    return TestClient(create_app(registry=registry))


class TestHealthGet:
    def test_reports_status(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == settings.app.version
        assert data["environment"] == "testing"
        assert data["rate_limit"]["remaining"] == 1
        assert data["rate_limit"]["reset_at"].startswith("1970-01-01T00:15:00")

    def test_limited_per_client(self, client: TestClient) -> None:
        client.get("/health")
        client.get("/health")

        blocked = client.get("/health")

        assert blocked.status_code == 429
        assert blocked.headers["Retry-After"] == "900"
        error = blocked.json()["error"]
        assert error["code"] == "rate_limit_exceeded"
        assert error["details"] == {"retry_after": 900, "limit": 2, "policy": "health:get"}
        assert blocked.headers["X-RateLimit-Limit"] == "2"
        assert blocked.headers["X-RateLimit-Remaining"] == "0"

    def test_forwarded_clients_have_separate_quota(self, client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(settings.app, "trust_forwarded_headers", True)
        for _ in range(3):
            client.get("/health", headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})

        other = client.get("/health", headers={"X-Real-IP": "198.51.100.7"})

        assert other.status_code == 200
        assert other.json()["rate_limit"]["remaining"] == 1

    def test_forwarded_headers_ignored_by_default(
        self, client: TestClient, registry: RateLimitRegistry
    ) -> None:
        for ip in ("203.0.113.1", "203.0.113.2", "203.0.113.3"):
            response = client.get("/health", headers={"X-Forwarded-For": ip})

        assert response.status_code == 429
        assert len(registry.api_store) == 1

    def test_unknown_api_keys_share_the_client_quota(
        self, client: TestClient, registry: RateLimitRegistry
    ) -> None:
        responses = [
            client.get("/health", headers={"X-API-Key": f"made-up-key-{i}"}) for i in range(4)
        ]

        assert [r.status_code for r in responses] == [200, 200, 429, 429]
        assert registry.api_store.get_entry("ip:testclient", "health:get").count == 2
        assert len(registry.api_store) == 1

    def test_api_key_callers_are_keyed_by_key(
        self, client: TestClient, registry: RateLimitRegistry
    ) -> None:
        client.get("/health", headers={"X-API-Key": "test-api-key-123"})

        subject = f"api_key:{hash_identifier('test-api-key-123')}"
        assert registry.api_store.get_entry(subject, "health:get").count == 1
        assert registry.api_store.get_entry("ip:testclient", "health:get") is None
        assert len(registry.api_store) == 1

    def test_disabled_rate_limiting(self, client: TestClient) -> None:
        with patch("app.core.rate_limit.settings") as mock_settings:
            mock_settings.app.rate_limit_enabled = False
            responses = [client.get("/health") for _ in range(5)]

        assert all(r.status_code == 200 for r in responses)
        assert responses[-1].json()["rate_limit"] is None


class TestHealthPost:
    def test_accepts_json(self, client: TestClient) -> None:
        payload = {"ping": "pong"}

        response = client.post("/health", json=payload)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "post_received"
        assert data["body_size"] == len(json.dumps(payload))
        assert data["rate_limit"]["remaining"] == 0

    def test_post_has_its_own_quota(self, client: TestClient) -> None:
        assert client.post("/health", json={}).status_code == 200
        assert client.post("/health", json={}).status_code == 429
        assert client.get("/health").status_code == 200

    def test_rejects_non_json(self, client: TestClient) -> None:
        response = client.post(
            "/health", content=b"hello", headers={"Content-Type": "text/plain"}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_content_type"

    def test_rejects_malformed_json(self, client: TestClient) -> None:
        response = client.post(
            "/health", content=b"{nope", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_json"

    def test_rejects_large_body(self, client: TestClient) -> None:
        with patch("app.api.routes.health.settings") as mock_settings:
            mock_settings.app.health_max_body_bytes = 8
            response = client.post("/health", json={"data": "x" * 100})

        assert response.status_code == 413
        error = response.json()["error"]
        assert error["code"] == "payload_too_large"
        assert error["details"]["max_bytes"] == 8


def test_openapi_exempts_health_from_auth() -> None:
    schema = create_app().openapi()

    assert schema["paths"]["/health"]["get"]["security"] == []
    assert "ApiKeyAuth" in schema["components"]["securitySchemes"]
