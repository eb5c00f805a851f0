"""Rate limiter interfaces and value types.

Callers depend on ``AbstractRateLimitStore`` rather than the concrete
in-memory implementation, so a shared backend (e.g., Redis) can be dropped
in later without touching the gatekeeper or the HTTP layer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitConfig:
    """Fixed-window policy for one action.

    Attributes:
        max_requests: Calls accepted per window.
        window_ms: Window length in milliseconds.

    Raises:
        ValueError: If either value is not a positive integer.
    """

    max_requests: int
    window_ms: int

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.window_ms < 1:
            raise ValueError("window_ms must be >= 1")

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000


@dataclass
class RateLimitEntry:
    """Counter state for a single (subject, action) key."""

    count: int
    reset_time_ms: int


@dataclass(frozen=True)
class LimitDecision:
    """Outcome of a single ``check_limit`` call.

    Attributes:
        allowed: Whether the call may proceed.
        remaining: Calls left in the current window (0 when rejected).
        retry_after_seconds: Whole seconds until the window ends, rounded
            up. ``None`` for allowed calls.
        limit: ``max_requests`` of the policy that was applied.
        reset_at_ms: Epoch milliseconds at which the current window ends.
    """

    allowed: bool
    remaining: int
    retry_after_seconds: int | None
    limit: int
    reset_at_ms: int

    @property
    def reset_at(self) -> int:
        """Window end in epoch seconds (rounded up)."""
        return -(-self.reset_at_ms // 1000)


class AbstractRateLimitStore(ABC):
    """Interface for keyed fixed-window counters."""

    @abstractmethod
    def check_limit(
        self, subject_id: str, action_name: str, config: RateLimitConfig
    ) -> LimitDecision:
        """Count one call for ``(subject_id, action_name)`` under ``config``.

        Over-limit calls are a normal outcome reported through the returned
        decision, never an exception.
        """
        raise NotImplementedError

    @abstractmethod
    def reset_limit(self, subject_id: str, action_name: str) -> bool:
        """Drop the counter for a key. Returns True if one existed."""
        raise NotImplementedError

    @abstractmethod
    def cleanup_expired(self) -> int:
        """Remove every expired entry. Returns how many were removed."""
        raise NotImplementedError

    @abstractmethod
    def get_entry(self, subject_id: str, action_name: str) -> RateLimitEntry | None:
        """Return a snapshot of a key's counter, if present."""
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        raise NotImplementedError
