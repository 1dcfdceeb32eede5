"""OpenAPI customization.

Documents the client identifier header as an ``apiKey`` security scheme so
the docs UI lets callers set it once, and exempts health endpoints from it.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from app.core.config import settings

_TAGS = [
    {
        "name": "Ping",
        "description": "Rate-limited endpoints (fixed window per client id).",
    },
    {
        "name": "Health",
        "description": "Liveness and readiness checks.",
    },
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and the client scheme."""

    original_openapi = app.openapi
    header_name = settings.app.rate_limit_client_header

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        security_schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ClientId",
            {
                "type": "apiKey",
                "in": "header",
                "name": header_name,
                "description": "Identifier used to count requests against the rate limit.",
            },
        )
        schema.setdefault("security", [{"ClientId": []}])

        tags = schema.setdefault("tags", [])
        known = {t.get("name") for t in tags}
        tags.extend(tag for tag in _TAGS if tag["name"] not in known)

        for path, methods in schema.get("paths", {}).items():
            if path.endswith("/health") or path.endswith("/health/ready"):
                for method_obj in methods.values():
                    if isinstance(method_obj, dict):
                        method_obj["security"] = []

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
