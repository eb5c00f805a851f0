"""In-memory fixed-window rate limit store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: the read-check-increment sequence for a key runs under one lock.
- Expired entries are dropped lazily on access, by a probabilistic sweep on
  roughly 1 in 100 calls, and optionally by a periodic background sweep.
"""

from __future__ import annotations

import logging
import math
import random
import threading
import time
from dataclasses import replace
from typing import Callable

from app.adapters.rate_limit.base import (
    AbstractRateLimitStore,
    LimitDecision,
    RateLimitConfig,
    RateLimitEntry,
)

logger = logging.getLogger(__name__)

StoreKey = tuple[str, str]


def wall_clock_ms() -> int:
    """Current UNIX time in milliseconds."""
    return int(time.time() * 1000)


class InMemoryRateLimitStore(AbstractRateLimitStore):
    """Fixed-window counters keyed by ``(subject_id, action_name)``.

    A window starts on the first call after the previous one expired and
    lasts ``config.window_ms``. Unused quota is not carried over and
    rejected calls never consume quota or extend the window.

    Important:
        Each instance owns its own state. Build one per trust boundary
        (e.g., one for internal mutations and one for HTTP endpoints) and
        keep it alive for the lifetime of the service.
    """

    def __init__(
        self,
        *,
        clock_ms: Callable[[], int] = wall_clock_ms,
        sweep_probability: float = 0.01,
        rng: Callable[[], float] = random.random,
        name: str = "default",
    ) -> None:
        """Initialize an empty store.

        Args:
            clock_ms: Time source returning UNIX time in milliseconds.
            sweep_probability: Chance in [0, 1] that a call triggers a
                cleanup sweep.
            rng: Source of uniform floats in [0, 1) used for the sweep draw.
            name: Label used in log records.

        Raises:
            ValueError: If sweep_probability is outside [0, 1].
        """
        if not 0.0 <= sweep_probability <= 1.0:
            raise ValueError("sweep_probability must be between 0 and 1")

        self.name = name
        self._clock_ms = clock_ms
        self._sweep_probability = sweep_probability
        self._rng = rng
        self._lock = threading.RLock()
        self._sweep_lock = threading.Lock()
        self._entries: dict[StoreKey, RateLimitEntry] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryRateLimitStore(name={self.name!r}, size={len(self)})"

    @staticmethod
    def _validate_key(subject_id: str, action_name: str) -> StoreKey:
        if not subject_id:
            raise ValueError("subject_id must be a non-empty string")
        if not action_name:
            raise ValueError("action_name must be a non-empty string")
        return subject_id, action_name

    def check_limit(
        self, subject_id: str, action_name: str, config: RateLimitConfig
    ) -> LimitDecision:
        """Count one call for the key and decide whether it may proceed.

        Args:
            subject_id: Identity the quota belongs to (user id, client id).
            action_name: Operation being limited.
            config: Policy to enforce for this action.

        Returns:
            LimitDecision describing the outcome.

        Raises:
            ValueError: If subject_id or action_name is empty.
        """
        key = self._validate_key(subject_id, action_name)
        now = self._clock_ms()

        with self._lock:
            entry = self._entries.get(key)
            if entry is None or now > entry.reset_time_ms:
                entry = RateLimitEntry(count=0, reset_time_ms=now + config.window_ms)

            if entry.count >= config.max_requests:
                retry_after = max(1, math.ceil((entry.reset_time_ms - now) / 1000))
                decision = LimitDecision(
                    allowed=False,
                    remaining=0,
                    retry_after_seconds=retry_after,
                    limit=config.max_requests,
                    reset_at_ms=entry.reset_time_ms,
                )
            else:
                entry.count += 1
                self._entries[key] = entry
                decision = LimitDecision(
                    allowed=True,
                    remaining=config.max_requests - entry.count,
                    retry_after_seconds=None,
                    limit=config.max_requests,
                    reset_at_ms=entry.reset_time_ms,
                )

        if self._sweep_probability and self._rng() < self._sweep_probability:
            self._try_sweep()

        return decision

    def _try_sweep(self) -> None:
        # Another caller is already sweeping; skip rather than wait on it.
        if not self._sweep_lock.acquire(blocking=False):
            return
        try:
            self.cleanup_expired()
        finally:
            self._sweep_lock.release()

    def cleanup_expired(self) -> int:
        """Delete every entry whose window has already ended.

        Returns:
            Number of entries removed.
        """
        now = self._clock_ms()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if now > entry.reset_time_ms]
            for key in expired:
                del self._entries[key]
            remaining = len(self._entries)

        if expired:
            logger.debug(
                "rate_limit.sweep",
                extra={"store": self.name, "removed": len(expired), "size": remaining},
            )
        return len(expired)

    def reset_limit(self, subject_id: str, action_name: str) -> bool:
        """Remove the counter for a key regardless of expiry.

        Returns:
            True if an entry existed and was removed.
        """
        key = self._validate_key(subject_id, action_name)
        with self._lock:
            return self._entries.pop(key, None) is not None

    def get_entry(self, subject_id: str, action_name: str) -> RateLimitEntry | None:
        """Return a copy of a key's counter (None when absent)."""
        with self._lock:
            entry = self._entries.get((subject_id, action_name))
            return replace(entry) if entry is not None else None
