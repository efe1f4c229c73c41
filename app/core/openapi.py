"""OpenAPI metadata and customization utilities.

Provides a helper to enrich the generated OpenAPI schema with:
- Tags metadata
- Admin API Key security scheme (``X-API-Key``) applied to admin operations
- The ``429`` response shared by every rate limited operation
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI


_TAGS = [
    {"name": "Files", "description": "Quota-checked uploads and removals."},
    {"name": "Admin", "description": "Rate limit policies, counters and storage quotas."},
    {"name": "Health", "description": "Liveness and readiness checks."},
]

_RATE_LIMITED_RESPONSE = {
    "description": "Too many requests for this endpoint and caller.",
    "headers": {
        "Retry-After": {"schema": {"type": "integer"}},
        "X-RateLimit-Limit": {"schema": {"type": "integer"}},
        "X-RateLimit-Remaining": {"schema": {"type": "integer"}},
        "X-RateLimit-Reset": {"schema": {"type": "integer"}},
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security.

    - Injects components.securitySchemes for the admin API key
    - Requires it on operations under ``/admin``
    - Documents the 429 response on every non-health operation
    - Adds tags metadata if not present
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "AdminApiKey",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Admin API key required for /v1/admin routes.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in _TAGS:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if "/health" in path:
                continue
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                method_obj.setdefault("responses", {}).setdefault("429", _RATE_LIMITED_RESPONSE)
                if "/admin/" in path:
                    method_obj["security"] = [{"AdminApiKey": []}]

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
