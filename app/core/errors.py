"""Application-level exception types.

This module defines domain errors used across services and the HTTP layer,
enabling consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NotRequired, TypedDict

if TYPE_CHECKING:
    from app.adapters.rate_limit.base import LimitDecision


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep shapes consistent without forcing every
    error to fill every field.
    """

    code: str
    message: str
    hint: str
    http_status: int
    retry_after: int
    limit: int
    action: str
    policy: str
    max_bytes: int
    actual_bytes: int
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class PayloadTooLargeAppError(AppError):
    """Raised when a request body exceeds the configured size."""


@dataclass
class RateLimitAppError(AppError):
    """Raised when a rate limit check rejects a call.

    Attributes:
        retry_after: Whole seconds the caller should wait before retrying.
        limit: ``max_requests`` of the policy that rejected the call.
        remaining: Calls left in the window (always 0 for a rejection).
        reset_at: Epoch seconds at which the window ends.
    """

    retry_after: int = 0
    limit: int | None = None
    remaining: int = 0
    reset_at: int | None = None

    @classmethod
    def for_retry(
        cls,
        retry_after: int,
        *,
        limit: int | None = None,
        reset_at: int | None = None,
        **details: Any,
    ) -> "RateLimitAppError":
        """Build the error from a retry hint.

        Args:
            retry_after: Seconds until the window ends.
            limit: Policy limit, when known.
            reset_at: Window end in epoch seconds, when known.
            **details: Extra structured context (action, policy, ...).

        Returns:
            RateLimitAppError with code ``rate_limit_exceeded``.
        """
        context: dict[str, Any] = {"retry_after": retry_after, **details}
        if limit is not None:
            context["limit"] = limit
        return cls(
            code="rate_limit_exceeded",
            message=f"Rate limit exceeded. Try again in {retry_after} seconds.",
            details=context,  # type: ignore[arg-type]
            retry_after=retry_after,
            limit=limit,
            reset_at=reset_at,
        )

    @classmethod
    def from_decision(cls, decision: "LimitDecision", **details: Any) -> "RateLimitAppError":
        """Build the error from a rejected limit decision."""
        return cls.for_retry(
            decision.retry_after_seconds or 1,
            limit=decision.limit,
            reset_at=decision.reset_at,
            **details,
        )
