"""Tests for the static rate limit policy tables."""

import pytest

from app.adapters.rate_limit.base import RateLimitConfig
from app.core.rate_limit_policies import (
    API_RATE_LIMITS,
    MUTATION_RATE_LIMITS,
    UserRole,
    get_api_config,
    get_mutation_config,
    resolve_api_policy_name,
)


class TestMutationPolicies:
    def test_known_action(self) -> None:
        assert get_mutation_config("adviser:accept_group") == RateLimitConfig(10, 60_000)

    def test_high_risk_action_uses_long_window(self) -> None:
        assert get_mutation_config("student:request_adviser") == RateLimitConfig(5, 300_000)

    def test_unknown_action_is_unrestricted(self) -> None:
        assert get_mutation_config("unknown_action") is None

    def test_custom_table(self) -> None:
        table = {"x": RateLimitConfig(1, 1)}
        assert get_mutation_config("x", table) == RateLimitConfig(1, 1)
        assert get_mutation_config("adviser:accept_group", table) is None

    def test_table_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            MUTATION_RATE_LIMITS["new"] = RateLimitConfig(1, 1)  # type: ignore[index]


class TestApiPolicies:
    @pytest.mark.parametrize(
        ("role", "operation", "expected"),
        [
            (UserRole.STUDENT, "document_update", "doc_update"),
            (UserRole.STUDENT, "adviser_request", "adviser_request"),
            (UserRole.ADVISER, "document_status", "doc_status"),
            (UserRole.ADVISER, "group_action", "group_action"),
            (UserRole.ADVISER, "document_update", "general"),
            (UserRole.INSTRUCTOR, "note_create", "general"),
            (UserRole.ADMIN, "password_change", "password_change"),
            (UserRole.STUDENT, "secondary_profile_update", "student_secondary_profile"),
            (UserRole.STUDENT, "something_else", "general"),
            (99, "document_update", "general"),
        ],
    )
    def test_resolve_policy_name(self, role, operation: str, expected: str) -> None:
        assert resolve_api_policy_name(role, operation) == expected

    def test_get_api_config_returns_policy_and_config(self) -> None:
        name, config = get_api_config(UserRole.STUDENT, "adviser_request")

        assert name == "adviser_request"
        assert config == RateLimitConfig(3, 300_000)

    def test_missing_policy_falls_back_to_general(self) -> None:
        table = {"general": RateLimitConfig(7, 1_000)}

        assert get_api_config(UserRole.STUDENT, "document_update", table) == (
            "general",
            RateLimitConfig(7, 1_000),
        )

    def test_health_policies(self) -> None:
        assert API_RATE_LIMITS["health:get"] == RateLimitConfig(100, 900_000)
        assert API_RATE_LIMITS["health:post"] == RateLimitConfig(50, 900_000)
