"""OpenAPI schema additions for the gateway.

FastAPI generates paths and models; this module layers on what it cannot
infer from route signatures: the ``X-API-Key`` security scheme (with the
health probe exempted), tag descriptions, and the ``X-RateLimit-*`` headers
that the rate limit dependency adds to every response.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

API_KEY_SCHEME = "ApiKeyAuth"

RATE_LIMIT_HEADERS: Dict[str, str] = {
    "X-RateLimit-Limit": "Points allowed per window for this route's tier.",
    "X-RateLimit-Remaining": "Points left in the current window.",
    "X-RateLimit-Reset": "ISO-8601 time the current window (or block) ends.",
}

TAGS_METADATA = [
    {"name": "Rate limits", "description": "Inspect, clear and purge rate limit counters."},
    {"name": "Health", "description": "Liveness check; counts against the general tier."},
]

# Paths reachable without an API key
PUBLIC_PATHS = ("/health",)


def _add_security(schema: Dict[str, Any]) -> None:
    schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
    schemes.setdefault(
        API_KEY_SCHEME,
        {
            "type": "apiKey",
            "in": "header",
            "name": "X-API-Key",
            "description": "Operations key from APP_API_KEYS.",
        },
    )
    schema.setdefault("security", [{API_KEY_SCHEME: []}])


def _add_tags(schema: Dict[str, Any]) -> None:
    tags = schema.setdefault("tags", [])
    known = {tag.get("name") for tag in tags}
    tags.extend(tag for tag in TAGS_METADATA if tag["name"] not in known)


def _decorate_operations(schema: Dict[str, Any]) -> None:
    for path, operations in schema.get("paths", {}).items():
        for operation in operations.values():
            if not isinstance(operation, dict):
                continue
            if path in PUBLIC_PATHS:
                operation["security"] = []
            for response in operation.get("responses", {}).values():
                headers = response.setdefault("headers", {})
                for name, description in RATE_LIMIT_HEADERS.items():
                    headers.setdefault(
                        name, {"description": description, "schema": {"type": "string"}}
                    )


def apply_openapi_customizations(app: FastAPI) -> None:
    """Wrap ``app.openapi`` so the generated schema carries the additions above.

    FastAPI caches the generated schema, and every addition is idempotent,
    so repeated calls return the same decorated object.
    """

    generate = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = generate()
        _add_security(schema)
        _add_tags(schema)
        _decorate_operations(schema)
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
