"""Tests for the per-app limiter registry, client identification and the background sweep."""

import asyncio
from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from app.adapters.rate_limit.base import RateLimitConfig
from app.core.app_factory import create_app
from app.core.config import AppSettings, settings
from app.core.rate_limit import RateLimitRegistry, resolve_client_id, run_sweep_loop


def _request(headers: dict[str, str] | None = None, client=("10.0.0.5", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/health",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


@pytest.fixture
def trusted_proxy(monkeypatch) -> None:
    monkeypatch.setattr(settings.app, "trust_forwarded_headers", True)


class TestResolveClientId:
    def test_configured_api_key_takes_precedence(self, trusted_proxy) -> None:
        subject = resolve_client_id(_request({"X-Forwarded-For": "1.2.3.4"}), "test-api-key-123")

        assert subject.startswith("api_key:")
        assert "test-api-key-123" not in subject

    def test_unknown_api_key_falls_back_to_address(self) -> None:
        assert resolve_client_id(_request(), "not-a-configured-key") == "ip:10.0.0.5"

    def test_rotating_unknown_keys_map_to_one_subject(self) -> None:
        subjects = {resolve_client_id(_request(), f"rotated-{i}") for i in range(5)}

        assert subjects == {"ip:10.0.0.5"}

    def test_first_forwarded_hop(self, trusted_proxy) -> None:
        request = _request({"X-Forwarded-For": " 203.0.113.9 , 10.0.0.1"})

        assert resolve_client_id(request) == "ip:203.0.113.9"

    def test_real_ip_header(self, trusted_proxy) -> None:
        assert resolve_client_id(_request({"X-Real-IP": "198.51.100.7"})) == "ip:198.51.100.7"

    def test_socket_peer(self) -> None:
        assert resolve_client_id(_request()) == "ip:10.0.0.5"

    def test_unknown_without_peer(self) -> None:
        assert resolve_client_id(_request(client=None)) == "ip:unknown"

    def test_forwarded_headers_untrusted_by_default(self) -> None:
        assert AppSettings.model_fields["trust_forwarded_headers"].default is False

    def test_forwarded_headers_ignored_when_untrusted(self) -> None:
        with patch("app.core.rate_limit.settings") as mock_settings:
            mock_settings.app.trust_forwarded_headers = False
            subject = resolve_client_id(_request({"X-Forwarded-For": "203.0.113.9"}))

        assert subject == "ip:10.0.0.5"


class TestRegistry:
    def test_stores_are_independent(self) -> None:
        registry = RateLimitRegistry.from_settings(
            settings.app,
            mutation_policies={"act": RateLimitConfig(1, 60_000)},
            api_policies={"act": RateLimitConfig(1, 60_000)},
        )

        registry.mutations.validate("u1", "act")
        decision = registry.check_api("u1", "act")

        assert decision.allowed is True
        assert registry.mutations.store is not registry.api_store

    def test_unknown_api_policy_raises(self) -> None:
        registry = RateLimitRegistry.from_settings(settings.app)

        with pytest.raises(KeyError):
            registry.check_api("u1", "no-such-policy")


@pytest.mark.asyncio
async def test_sweep_loop_drops_expired_entries() -> None:
    clock = Mock(return_value=0)
    registry = RateLimitRegistry.from_settings(
        settings.app, clock_ms=clock, mutation_policies={"act": RateLimitConfig(1, 1_000)}
    )
    registry.mutations.validate("u1", "act")
    registry.check_api("ip:1.2.3.4", "general")
    clock.return_value = 120_000

    task = asyncio.create_task(run_sweep_loop(registry, 0.01))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert len(registry.mutations.store) == 0
    assert len(registry.api_store) == 0


def test_lifespan_starts_and_stops_background_sweep(monkeypatch) -> None:
    monkeypatch.setattr(settings.app, "rate_limit_sweep_interval_seconds", 3600)

    with TestClient(create_app()) as client:
        assert client.get("/health").status_code == 200
