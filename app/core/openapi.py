"""OpenAPI metadata and customization utilities.

Enriches the generated schema with:
- Tags metadata
- A documented 429 response (with Retry-After) on rate limited operations

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

RATE_LIMITED_PATH_PREFIXES = ("/api/discogs",)

_TOO_MANY_REQUESTS = {
    "description": "Rate limit exceeded for this client.",
    "headers": {
        "Retry-After": {
            "description": "Seconds until the current window resets.",
            "schema": {"type": "integer"},
        },
        "X-RateLimit-Remaining": {
            "description": "Always 0 on a throttled response.",
            "schema": {"type": "integer"},
        },
    },
    "content": {
        "application/json": {
            "schema": {
                "type": "object",
                "properties": {"error": {"type": "string"}},
            }
        }
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and throttling docs."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Discogs",
                "description": (
                    "Server-side proxy to the Discogs API, limited per client "
                    "below the upstream quota."
                ),
            },
            {
                "name": "Health",
                "description": "Liveness checks.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if not path.startswith(RATE_LIMITED_PATH_PREFIXES):
                continue
            for method_obj in methods.values():
                if isinstance(method_obj, dict):
                    method_obj.setdefault("responses", {}).setdefault("429", _TOO_MANY_REQUESTS)

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
