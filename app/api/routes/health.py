from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Request

from app.adapters.rate_limit.base import LimitDecision
from app.core.config import settings
from app.core.errors import PayloadTooLargeAppError, ValidationAppError
from app.core.rate_limit import enforce_rate_limit

router = APIRouter(tags=["Health"])


def _now_iso() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def _rate_limit_info(decision: LimitDecision | None) -> dict[str, Any] | None:
    """Summarize the caller's remaining quota for the response body.

    Args:
        decision: Decision from the limit check, or None when limiting is off.

    Returns:
        dict with ``remaining`` and an ISO ``reset_at``, or None.
    """
    if decision is None:
        return None
    return {
        "remaining": decision.remaining,
        "reset_at": datetime.fromtimestamp(decision.reset_at_ms / 1000, tz=timezone.utc).isoformat(),
    }


@router.get("/health")
async def health_check(
    decision: LimitDecision | None = Depends(enforce_rate_limit("health:get")),
) -> dict:
    """Health check endpoint.

    Used by load balancers and monitoring systems to determine service
    health. Limited per client address.

    Returns:
        dict: Status, timestamp, version, environment and the caller's
            remaining health-check quota.
    """

    return {
        "status": "healthy",
        "timestamp": _now_iso(),
        "version": settings.app.version,
        "environment": settings.app_env,
        "rate_limit": _rate_limit_info(decision),
    }


@router.post("/health")
async def health_echo(
    request: Request,
    decision: LimitDecision | None = Depends(enforce_rate_limit("health:post")),
) -> dict:
    """Accept a small JSON body and report its size.

    Raises:
        PayloadTooLargeAppError: Declared or actual body exceeds the limit.
        ValidationAppError: Content type is not JSON or the body is malformed.
    """

    max_bytes = settings.app.health_max_body_bytes
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > max_bytes:
        raise PayloadTooLargeAppError(
            code="payload_too_large",
            message="Request too large",
            details={"max_bytes": max_bytes, "actual_bytes": int(declared)},
        )

    content_type = request.headers.get("content-type", "")
    if "application/json" not in content_type:
        raise ValidationAppError(code="invalid_content_type", message="Invalid content type")

    raw = await request.body()
    if len(raw) > max_bytes:
        raise PayloadTooLargeAppError(
            code="payload_too_large",
            message="Request too large",
            details={"max_bytes": max_bytes, "actual_bytes": len(raw)},
        )

    try:
        body = json.loads(raw)
    except ValueError as exc:
        raise ValidationAppError(code="invalid_json", message="Malformed JSON body") from exc

    return {
        "status": "post_received",
        "timestamp": _now_iso(),
        "body_size": len(json.dumps(body)),
        "rate_limit": _rate_limit_info(decision),
    }
