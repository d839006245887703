"""OpenAPI customization utilities.

Enriches the generated schema with tag metadata and documents the rate
limit response headers, keeping documentation concerns out of the app
factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_TAGS = [
    {
        "name": "Power usage",
        "description": "Estimated power draw of blockchain networks. Rate limited per client.",
    },
    {
        "name": "Health",
        "description": "Liveness checks. Not rate limited.",
    },
]

_RATE_LIMIT_HEADERS = {
    "X-Rate-Limit-Limit": "Requests allowed per window of the first quota tier.",
    "X-Rate-Limit-Remaining": "Requests left in the current window.",
    "X-Rate-Limit-Reset": "UNIX time of the next period-aligned window boundary.",
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and header docs.

    - Adds tags metadata if not present
    - Documents X-Rate-Limit-* headers on 200 responses of rate limited paths
    - Documents the 429 response with its Retry-After header
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in _TAGS:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if path.endswith("/health"):
                continue
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                responses = method_obj.setdefault("responses", {})
                ok = responses.get("200")
                if isinstance(ok, dict):
                    headers = ok.setdefault("headers", {})
                    for name, description in _RATE_LIMIT_HEADERS.items():
                        headers.setdefault(
                            name,
                            {"description": description, "schema": {"type": "integer"}},
                        )
                responses.setdefault(
                    "429",
                    {
                        "description": "A quota tier is exceeded.",
                        "headers": {
                            "Retry-After": {
                                "description": "Seconds until the exceeded tier's window boundary.",
                                "schema": {"type": "integer"},
                            },
                        },
                    },
                )

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
