"""API key authentication for administrative routes.

Keys are validated against a comma-separated list from the environment
(``APP_API_KEYS``). The health endpoint stays open; everything under /v1
depends on ``verify_api_key``.
"""

from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import Header, HTTPException, status

from app.core.config import settings
from app.core.errors import AuthenticationAppError
from app.core.logging import hash_identifier

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> sorted(parse_api_keys("key1, key2 ,key1"))
        ['key1', 'key2']
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()
    return {key.strip() for key in keys_string.split(",") if key.strip()}


def _matches_any(provided_key: str, valid_keys: set[str]) -> bool:
    return any(hmac.compare_digest(provided_key, key) for key in valid_keys)


def is_known_api_key(provided_key: str) -> bool:
    """Return True if the key is one of the configured API keys."""
    valid_keys = parse_api_keys(settings.app.api_keys)
    return bool(valid_keys) and _matches_any(provided_key, valid_keys)


def validate_api_key(provided_key: str) -> None:
    """Validate that a provided API key matches a configured key.

    Args:
        provided_key: API key to validate.

    Raises:
        AuthenticationAppError: If the key is invalid, or authentication is
            required but no keys are configured.
    """
    if not settings.app.api_key_required:
        return

    valid_keys = parse_api_keys(settings.app.api_keys)

    if not valid_keys:
        logger.error(
            "api_key_validation_failed",
            extra={"reason": "api_keys_not_configured"},
        )
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false"},
        )

    if not _matches_any(provided_key, valid_keys):
        logger.warning(
            "api_key_validation_failed",
            extra={
                "reason": "invalid_api_key",
                "api_key_hash": hash_identifier(provided_key),
            },
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )


async def verify_api_key(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency for API key authentication.

    Usage:
        router = APIRouter(dependencies=[Depends(verify_api_key)])

    Raises:
        HTTPException: 403 Forbidden if authentication fails.
    """
    if not settings.app.api_key_required:
        logger.debug("auth.skipped", extra={"reason": "auth_required_false"})
        return

    if not x_api_key:
        logger.warning("auth.missing_key", extra={"api_key_present": False})
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing API key. Provide X-API-Key header.",
        )

    try:
        validate_api_key(x_api_key)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc

    logger.debug("auth.success", extra={"api_key_hash": hash_identifier(x_api_key)})
