"""Pydantic schemas for rate limit endpoints."""

from __future__ import annotations

from typing import Dict

from pydantic import BaseModel, Field

from app.adapters.rate_limit.base import LimitDecision, RateLimitConfig
from app.core.rate_limit_policies import UserRole


class PolicyOut(BaseModel):
    """One fixed-window policy."""

    max_requests: int = Field(..., description="Calls accepted per window.")
    window_ms: int = Field(..., description="Window length in milliseconds.")

    @classmethod
    def from_config(cls, config: RateLimitConfig) -> "PolicyOut":
        """Build the response model from a store config."""
        return cls(max_requests=config.max_requests, window_ms=config.window_ms)


class PoliciesResponse(BaseModel):
    """Every configured policy, grouped by limiter."""

    mutations: Dict[str, PolicyOut] = Field(
        ..., description="Limits on authenticated write operations, by action name."
    )
    api: Dict[str, PolicyOut] = Field(
        ..., description="Limits on HTTP endpoints, by policy name."
    )


class MutationCheckRequest(BaseModel):
    """Body for counting one write operation."""

    subject_id: str = Field(
        ..., min_length=1, max_length=256, description="User performing the write."
    )


class ApiCheckRequest(BaseModel):
    """Body for counting one HTTP call under a role-based policy."""

    subject_id: str = Field(
        ..., min_length=1, max_length=256, description="User calling the endpoint."
    )
    role: UserRole = Field(
        UserRole.STUDENT, description="Numeric user role (0 student, 1 adviser, ...)."
    )


class DecisionResponse(BaseModel):
    """Outcome of an allowed limit check."""

    limited: bool = Field(
        ..., description="False when no limit is configured for the action."
    )
    allowed: bool = True
    policy: str | None = Field(None, description="Policy that was applied.")
    limit: int | None = None
    remaining: int | None = None
    reset_at: int | None = Field(
        None, description="Epoch seconds at which the current window ends."
    )

    @classmethod
    def from_decision(cls, decision: LimitDecision | None, policy: str | None) -> "DecisionResponse":
        """Build the response from a limit decision.

        Args:
            decision: The decision, or None when the action has no limit.
            policy: Name of the applied policy.

        Returns:
            DecisionResponse with ``limited=False`` for unrestricted actions.
        """
        if decision is None:
            return cls(limited=False, policy=policy)
        return cls(
            limited=True,
            allowed=decision.allowed,
            policy=policy,
            limit=decision.limit,
            remaining=decision.remaining,
            reset_at=decision.reset_at,
        )


class ResetResponse(BaseModel):
    """Result of an administrative reset."""

    reset: bool = Field(..., description="Whether a counter existed and was cleared.")
