"""OpenAPI metadata and customization utilities.

Enriches the generated schema with:
- the session security schemes (``auth-token`` cookie, bearer token)
- tags metadata
- per-path exemptions for public endpoints
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from companion.core.config import settings

PUBLIC_PATH_SUFFIXES = ("/health", "/auth/register", "/auth/login", "/auth/logout")

TAGS = [
    {"name": "Auth", "description": "Registration, login and session cookie."},
    {"name": "Users", "description": "Profile, account deletion and RGPD export."},
    {"name": "Projects", "description": "Projects, members and project chat."},
    {"name": "Members", "description": "Invitations and the team overview."},
    {"name": "Documents", "description": "Upload, download, comments and comparison."},
    {"name": "Chat", "description": "Paginated project messages and read receipts."},
    {"name": "Notifications", "description": "In-app notifications."},
    {"name": "Billing", "description": "STANDARD subscription lifecycle and invoices."},
    {"name": "Assistant", "description": "Legal assistant chat."},
    {"name": "Health", "description": "Liveness checks."},
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security.

    Every operation requires a session by default; public endpoints are
    exempted by setting ``security: []``.
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "CookieAuth",
            {
                "type": "apiKey",
                "in": "cookie",
                "name": settings.auth.cookie_name,
                "description": "Session cookie set by POST /v1/auth/login.",
            },
        )
        security_schemes.setdefault(
            "BearerAuth",
            {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
                "description": "The access_token returned by POST /v1/auth/login.",
            },
        )

        schema.setdefault("security", [{"CookieAuth": []}, {"BearerAuth": []}])

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in TAGS:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if path.endswith(PUBLIC_PATH_SUFFIXES):
                for method_obj in methods.values():
                    if isinstance(method_obj, dict):
                        method_obj["security"] = []

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
