from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from app.core.auth import verify_api_key
from app.core.rate_limit import RateLimitRegistry, get_rate_limiters, raise_for_decision
from app.core.rate_limit_policies import get_api_config
from app.schemas.rate_limit import (
    ApiCheckRequest,
    DecisionResponse,
    MutationCheckRequest,
    PoliciesResponse,
    PolicyOut,
    ResetResponse,
)

router = APIRouter(
    prefix="/rate-limits",
    tags=["Rate Limits"],
    dependencies=[Depends(verify_api_key)],
)

Registry = Annotated[RateLimitRegistry, Depends(get_rate_limiters)]


@router.get("/policies", response_model=PoliciesResponse)
async def list_policies(registry: Registry) -> PoliciesResponse:
    """Return both policy tables."""

    return PoliciesResponse(
        mutations={
            name: PolicyOut.from_config(config)
            for name, config in registry.mutations.policies.items()
        },
        api={name: PolicyOut.from_config(config) for name, config in registry.api_policies.items()},
    )


@router.post("/mutations/{action}", response_model=DecisionResponse)
async def check_mutation(
    action: str,
    body: MutationCheckRequest,
    registry: Registry,
) -> DecisionResponse:
    """Count one write for ``body.subject_id`` against the mutation policy.

    Call this before performing the write. Actions without a configured
    policy are reported as ``limited=false`` and are never counted.

    Raises:
        RateLimitAppError: Rendered as 429 with a Retry-After header.
    """

    decision = registry.mutations.validate(body.subject_id, action)
    return DecisionResponse.from_decision(decision, action if decision else None)


@router.post("/api/{operation}", response_model=DecisionResponse)
async def check_api_operation(
    operation: str,
    body: ApiCheckRequest,
    registry: Registry,
) -> DecisionResponse:
    """Count one call for a user under the role-based HTTP policy.

    Raises:
        RateLimitAppError: 429 when the user's quota for the policy is exhausted.
    """

    policy, config = get_api_config(body.role, operation, registry.api_policies)
    decision = registry.api_store.check_limit(body.subject_id, policy, config)
    raise_for_decision(decision, policy=policy, key_type="user", subject=body.subject_id)
    return DecisionResponse.from_decision(decision, policy)


@router.delete("/mutations/{action}/{subject_id}", response_model=ResetResponse)
async def reset_mutation_limit(action: str, subject_id: str, registry: Registry) -> ResetResponse:
    """Clear a user's counter for a mutation action (idempotent)."""

    return ResetResponse(reset=registry.mutations.reset(subject_id, action))


@router.delete("/api/{policy}/{subject_id}", response_model=ResetResponse)
async def reset_api_limit(policy: str, subject_id: str, registry: Registry) -> ResetResponse:
    """Clear a subject's counter for an HTTP policy (idempotent)."""

    return ResetResponse(reset=registry.reset_api(subject_id, policy))
