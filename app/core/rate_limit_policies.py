"""Static rate limit policy tables.

Two independent tables exist on purpose:

- ``MUTATION_RATE_LIMITS`` guards authenticated write paths. Actions not in
  the table are unrestricted.
- ``API_RATE_LIMITS`` guards HTTP endpoints, including unauthenticated ones.
  Lookups never come back empty: unknown operations fall back to ``general``.

Values are policy, not mechanism. Change them here without touching the
limiter.
"""

from __future__ import annotations

from enum import IntEnum
from types import MappingProxyType
from typing import Mapping

from app.adapters.rate_limit.base import RateLimitConfig

MINUTE_MS = 60_000


class UserRole(IntEnum):
    """Numeric roles as stored on user records."""

    STUDENT = 0
    ADVISER = 1
    INSTRUCTOR = 2
    ADMIN = 3


MUTATION_RATE_LIMITS: Mapping[str, RateLimitConfig] = MappingProxyType(
    {
        # Adviser actions
        "adviser:accept_group": RateLimitConfig(10, MINUTE_MS),
        "adviser:reject_group": RateLimitConfig(10, MINUTE_MS),
        "adviser:update_document_status": RateLimitConfig(30, MINUTE_MS),
        "adviser:create_note": RateLimitConfig(20, MINUTE_MS),
        "adviser:update_note": RateLimitConfig(30, MINUTE_MS),
        "adviser:delete_note": RateLimitConfig(15, MINUTE_MS),
        # Student actions
        "student:request_adviser": RateLimitConfig(5, 5 * MINUTE_MS),
        "student:cancel_adviser_request": RateLimitConfig(5, 5 * MINUTE_MS),
        "student:update_task_status": RateLimitConfig(20, MINUTE_MS),
        "student:update_task_assignment": RateLimitConfig(15, MINUTE_MS),
        "student:update_document_content": RateLimitConfig(10, MINUTE_MS),
        "student:update_secondary_profile": RateLimitConfig(10, MINUTE_MS),
    }
)


API_RATE_LIMITS: Mapping[str, RateLimitConfig] = MappingProxyType(
    {
        # Student operations
        "doc_update": RateLimitConfig(10, MINUTE_MS),
        "task_update": RateLimitConfig(20, MINUTE_MS),
        "profile_update": RateLimitConfig(5, MINUTE_MS),
        "image_upload": RateLimitConfig(5, MINUTE_MS),
        "adviser_request": RateLimitConfig(3, 5 * MINUTE_MS),
        "student_secondary_profile": RateLimitConfig(10, MINUTE_MS),
        # Adviser operations
        "note_create": RateLimitConfig(15, MINUTE_MS),
        "note_update": RateLimitConfig(20, MINUTE_MS),
        "doc_status": RateLimitConfig(10, MINUTE_MS),
        "group_action": RateLimitConfig(5, MINUTE_MS),
        # Account security
        "password_verify": RateLimitConfig(5, 5 * MINUTE_MS),
        "password_change": RateLimitConfig(3, 10 * MINUTE_MS),
        "profile_picture": RateLimitConfig(5, 5 * MINUTE_MS),
        # Health checks, keyed by client address
        "health:get": RateLimitConfig(100, 15 * MINUTE_MS),
        "health:post": RateLimitConfig(50, 15 * MINUTE_MS),
        "general": RateLimitConfig(100, MINUTE_MS),
    }
)

GENERAL_POLICY = "general"

# operation name -> policy name, per role
_ROLE_OPERATIONS: dict[UserRole, dict[str, str]] = {
    UserRole.STUDENT: {
        "document_update": "doc_update",
        "task_update": "task_update",
        "profile_update": "profile_update",
        "image_upload": "image_upload",
        "adviser_request": "adviser_request",
    },
    UserRole.ADVISER: {
        "note_create": "note_create",
        "note_update": "note_update",
        "document_status": "doc_status",
        "group_action": "group_action",
    },
}

# Operations limited the same way for every role
_SHARED_OPERATIONS: dict[str, str] = {
    "password_verify": "password_verify",
    "password_change": "password_change",
    "profile_picture": "profile_picture",
    "secondary_profile_update": "student_secondary_profile",
}


def get_mutation_config(
    action_name: str,
    policies: Mapping[str, RateLimitConfig] = MUTATION_RATE_LIMITS,
) -> RateLimitConfig | None:
    """Look up the mutation policy for an action.

    Returns:
        The configured policy, or None when the action is unrestricted.
    """
    return policies.get(action_name)


def resolve_api_policy_name(role: int | UserRole, operation: str) -> str:
    """Map a caller role and operation to an HTTP policy name.

    Unknown operations, and roles without dedicated limits, resolve to the
    ``general`` policy.

    Examples:
        >>> resolve_api_policy_name(UserRole.STUDENT, "document_update")
        'doc_update'
        >>> resolve_api_policy_name(UserRole.INSTRUCTOR, "document_update")
        'general'
    """
    policy = _SHARED_OPERATIONS.get(operation)
    if policy is not None:
        return policy
    try:
        role_operations = _ROLE_OPERATIONS.get(UserRole(role), {})
    except ValueError:
        role_operations = {}
    return role_operations.get(operation, GENERAL_POLICY)


def get_api_config(
    role: int | UserRole,
    operation: str,
    policies: Mapping[str, RateLimitConfig] = API_RATE_LIMITS,
) -> tuple[str, RateLimitConfig]:
    """Resolve the HTTP policy for a caller role and operation.

    Returns:
        Tuple of (policy_name, config). Falls back to ``general`` when the
        resolved policy is missing from ``policies``.
    """
    policy = resolve_api_policy_name(role, operation)
    if policy not in policies:
        policy = GENERAL_POLICY
    return policy, policies[policy]
