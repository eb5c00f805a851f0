"""Rate limiting for state-changing operations.

``MutationRateLimiter`` sits in front of write paths: call ``validate``
before performing the write and let ``RateLimitAppError`` propagate to the
caller as a "try again in N seconds" condition.
"""

from __future__ import annotations

import logging
from typing import Mapping

from app.adapters.rate_limit.base import AbstractRateLimitStore, LimitDecision, RateLimitConfig
from app.core.errors import RateLimitAppError
from app.core.logging import hash_identifier
from app.core.rate_limit_policies import MUTATION_RATE_LIMITS, get_mutation_config

logger = logging.getLogger(__name__)


class MutationRateLimiter:
    """Applies the mutation policy table to a rate limit store.

    Actions absent from the policy table are unrestricted and never touch
    the store.
    """

    def __init__(
        self,
        store: AbstractRateLimitStore,
        policies: Mapping[str, RateLimitConfig] = MUTATION_RATE_LIMITS,
    ) -> None:
        self._store = store
        self._policies = policies

    @property
    def store(self) -> AbstractRateLimitStore:
        return self._store

    @property
    def policies(self) -> Mapping[str, RateLimitConfig]:
        return self._policies

    def get_config(self, action: str) -> RateLimitConfig | None:
        return get_mutation_config(action, self._policies)

    def check(self, subject_id: str, action: str) -> LimitDecision | None:
        """Count one call and return the decision.

        Returns:
            The decision, or None when the action has no configured limit.
        """
        config = self.get_config(action)
        if config is None:
            return None

        decision = self._store.check_limit(subject_id, action, config)
        if not decision.allowed:
            logger.info(
                "mutation_rate_limit.rejected",
                extra={
                    "action": action,
                    "subject_hash": hash_identifier(subject_id),
                    "limit": decision.limit,
                    "retry_after_s": decision.retry_after_seconds,
                },
            )
        return decision

    def validate(self, subject_id: str, action: str) -> LimitDecision | None:
        """Check the limit and raise when the call must not proceed.

        Raises:
            RateLimitAppError: When the subject has exhausted the action's
                quota for the current window.
        """
        decision = self.check(subject_id, action)
        if decision is not None and not decision.allowed:
            raise RateLimitAppError.from_decision(decision, action=action)
        return decision

    def reset(self, subject_id: str, action: str) -> bool:
        """Administrative override: clear the subject's counter for an action."""
        removed = self._store.reset_limit(subject_id, action)
        logger.info(
            "mutation_rate_limit.reset",
            extra={
                "action": action,
                "subject_hash": hash_identifier(subject_id),
                "removed": removed,
            },
        )
        return removed
