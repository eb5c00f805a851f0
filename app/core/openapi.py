"""OpenAPI customization.

Adds the ``X-API-Key`` security scheme and tag descriptions to the
generated schema, and exempts health endpoints from the global security
requirement.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_TAGS = [
    {
        "name": "Rate Limits",
        "description": "Quota checks for write paths and HTTP operations, policy listing and resets.",
    },
    {
        "name": "Health",
        "description": "Liveness checks, rate limited per client address.",
    },
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add security and tags."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        security_schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Provide your API key via the X-API-Key header.",
            },
        )
        schema.setdefault("security", [{"ApiKeyAuth": []}])

        tags = schema.setdefault("tags", [])
        existing = {t.get("name") for t in tags}
        tags.extend(tag for tag in _TAGS if tag["name"] not in existing)

        for path, methods in schema.get("paths", {}).items():
            if path.endswith("/health"):
                for method_obj in methods.values():
                    if isinstance(method_obj, dict):
                        method_obj["security"] = []

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
