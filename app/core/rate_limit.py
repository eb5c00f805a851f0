"""Rate limiting wiring for the HTTP layer.

Limiter state is owned by the application instance, not by this module:
``create_app()`` builds a ``RateLimitRegistry`` and stores it on
``app.state.rate_limiters``. Routes reach it through ``get_rate_limiters``.

Two stores live in the registry and never share counters:
- ``mutations``: authenticated write paths, per-user quotas.
- ``api_store``: HTTP endpoints, keyed by API key or client address.

HTTP client identity:
- A configured API key from X-API-Key (hashed). Unknown keys are ignored.
- Otherwise the first X-Forwarded-For hop, X-Real-IP, or the socket peer.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Annotated, Awaitable, Callable, Mapping

from fastapi import Header, Request

from app.adapters.rate_limit.base import AbstractRateLimitStore, LimitDecision, RateLimitConfig
from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore, wall_clock_ms
from app.core.auth import is_known_api_key
from app.core.config import AppSettings, settings
from app.core.errors import RateLimitAppError
from app.core.logging import hash_identifier
from app.core.rate_limit_policies import API_RATE_LIMITS, MUTATION_RATE_LIMITS
from app.services.mutation_guard import MutationRateLimiter

logger = logging.getLogger(__name__)


@dataclass
class RateLimitRegistry:
    """Per-application container for both limiter stores and their policies."""

    mutations: MutationRateLimiter
    api_store: AbstractRateLimitStore
    api_policies: Mapping[str, RateLimitConfig] = field(default_factory=lambda: API_RATE_LIMITS)

    @classmethod
    def from_settings(
        cls,
        app_settings: AppSettings,
        *,
        clock_ms: Callable[[], int] = wall_clock_ms,
        mutation_policies: Mapping[str, RateLimitConfig] = MUTATION_RATE_LIMITS,
        api_policies: Mapping[str, RateLimitConfig] = API_RATE_LIMITS,
    ) -> "RateLimitRegistry":
        """Build fresh in-memory stores configured from settings."""

        probability = app_settings.rate_limit_sweep_probability
        mutation_store = InMemoryRateLimitStore(
            clock_ms=clock_ms, sweep_probability=probability, name="mutations"
        )
        api_store = InMemoryRateLimitStore(
            clock_ms=clock_ms, sweep_probability=probability, name="api"
        )
        return cls(
            mutations=MutationRateLimiter(mutation_store, mutation_policies),
            api_store=api_store,
            api_policies=api_policies,
        )

    def stores(self) -> tuple[AbstractRateLimitStore, ...]:
        """Return every store owned by the registry (mutation store first)."""
        return self.mutations.store, self.api_store

    def check_api(self, subject_id: str, policy_name: str) -> LimitDecision:
        """Count one HTTP call under the named policy.

        Args:
            subject_id: Client or user the quota belongs to.
            policy_name: Key into the API policy table.

        Returns:
            LimitDecision for the call.

        Raises:
            KeyError: If the policy is not in the API table.
        """
        return self.api_store.check_limit(subject_id, policy_name, self.api_policies[policy_name])

    def reset_api(self, subject_id: str, policy_name: str) -> bool:
        """Clear a subject's counter for an HTTP policy.

        Returns:
            True if a counter existed and was removed.
        """
        return self.api_store.reset_limit(subject_id, policy_name)


def get_rate_limiters(request: Request) -> RateLimitRegistry:
    """FastAPI dependency returning the application's limiter registry."""

    return request.app.state.rate_limiters


def resolve_client_id(request: Request, x_api_key: str | None = None) -> str:
    """Build the HTTP limiter subject for the current request.

    Only a configured API key earns its own quota. Unknown keys are ignored
    so a caller cannot mint a fresh quota by rotating the header.

    Args:
        request: FastAPI request.
        x_api_key: API key value from the X-API-Key header.

    Returns:
        str: Namespaced subject, e.g. ``api_key:<hash>`` or ``ip:203.0.113.9``.
    """

    if x_api_key and is_known_api_key(x_api_key):
        return f"api_key:{hash_identifier(x_api_key)}"

    if settings.app.trust_forwarded_headers:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            first_hop = forwarded_for.split(",")[0].strip()
            if first_hop:
                return f"ip:{first_hop}"
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return f"ip:{real_ip.strip()}"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


def rate_limit_headers(exc: RateLimitAppError, *, include_limits: bool) -> dict[str, str]:
    """Build the response headers for a rate limit rejection.

    Args:
        exc: The rejection.
        include_limits: Whether to add the ``X-RateLimit-*`` headers.

    Returns:
        dict: ``Retry-After`` plus, when requested and known, the limit,
            remaining count and window reset (epoch seconds).
    """

    headers = {"Retry-After": str(max(1, exc.retry_after))}
    if include_limits and exc.limit is not None:
        headers["X-RateLimit-Limit"] = str(exc.limit)
        headers["X-RateLimit-Remaining"] = str(exc.remaining)
        if exc.reset_at is not None:
            headers["X-RateLimit-Reset"] = str(exc.reset_at)
    return headers


def raise_for_decision(decision: LimitDecision, *, policy: str, key_type: str, subject: str) -> None:
    """Log an HTTP decision and raise when it was rejected.

    Args:
        decision: Outcome of the limit check.
        policy: Name of the policy that was applied.
        key_type: How the subject was identified (``api_key``, ``ip``, ``user``).
        subject: The limiter subject, logged only as a hash.

    Raises:
        RateLimitAppError: Rendered as 429 by the global exception handler.
    """

    log_fields = {
        "policy": policy,
        "key_type": key_type,
        "key_hash": hash_identifier(subject),
        "limit": decision.limit,
        "remaining": decision.remaining,
    }
    if decision.allowed:
        logger.info("rate_limit.allowed", extra=log_fields)
        return

    logger.warning(
        "rate_limit.exceeded",
        extra={**log_fields, "retry_after_s": decision.retry_after_seconds},
    )
    raise RateLimitAppError.from_decision(decision, policy=policy)


def enforce_rate_limit(policy_name: str) -> Callable[..., Awaitable[LimitDecision | None]]:
    """Create a FastAPI dependency enforcing an HTTP policy per client.

    Usage:
        @router.get("/health")
        async def health(decision = Depends(enforce_rate_limit("health:get"))):
            ...

    Args:
        policy_name: Key into the API policy table.

    Returns:
        Dependency that yields the decision (None when limiting is disabled)
        or raises RateLimitAppError (HTTP 429).
    """

    async def dependency(
        request: Request,
        x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
    ) -> LimitDecision | None:
        if not settings.app.rate_limit_enabled:
            return None

        registry = get_rate_limiters(request)
        subject = resolve_client_id(request, x_api_key)
        decision = registry.check_api(subject, policy_name)
        raise_for_decision(
            decision,
            policy=policy_name,
            key_type="api_key" if subject.startswith("api_key:") else "ip",
            subject=subject,
        )
        return decision

    return dependency


async def run_sweep_loop(registry: RateLimitRegistry, interval_seconds: float) -> None:
    """Periodically drop expired entries from every store until cancelled."""

    while True:
        await asyncio.sleep(interval_seconds)
        removed = sum(store.cleanup_expired() for store in registry.stores())
        logger.debug("rate_limit.background_sweep", extra={"removed": removed})
