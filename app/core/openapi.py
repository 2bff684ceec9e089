"""OpenAPI metadata and customization utilities.

Enriches the generated OpenAPI schema with:
- Tags metadata
- API Key security scheme (``X-API-Key``) applied to task endpoints only
- A description of the rate limit tiers and 429 response shape

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_TAGS = [
    {"name": "Tasks", "description": "Per-user task CRUD, list queries and statistics."},
    {"name": "Auth", "description": "Registration and login; strict per-address quota."},
    {"name": "Health", "description": "Liveness check and service descriptor."},
]

_RATE_LIMITED_RESPONSE = {
    "description": "Quota exceeded for the caller's tier",
    "content": {
        "application/json": {
            "example": {
                "success": False,
                "message": "Request limit exceeded for this user",
                "retryAfter": 900,
                "userId": "3f1c...",
                "ip": "203.0.113.7",
            }
        }
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security.

    - Injects components.securitySchemes for API Key auth (header ``X-API-Key``)
    - Marks ``/api/tasks`` operations as requiring the key
    - Documents the 429 response on every rate limited operation
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "API key returned by /api/auth/register or /api/auth/login.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in _TAGS:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                if path.startswith("/api/tasks"):
                    method_obj["security"] = [{"ApiKeyAuth": []}]
                if path.startswith("/api/"):
                    method_obj.setdefault("responses", {})["429"] = _RATE_LIMITED_RESPONSE

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
