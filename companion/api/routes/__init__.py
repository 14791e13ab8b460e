from __future__ import annotations

from companion.api.routes.assistant import router as assistant_router
from companion.api.routes.auth import router as auth_router
from companion.api.routes.billing import router as billing_router
from companion.api.routes.chat import router as chat_router
from companion.api.routes.documents import router as documents_router
from companion.api.routes.health import router as health_router
from companion.api.routes.members import invitations_router, members_router
from companion.api.routes.notifications import router as notifications_router
from companion.api.routes.projects import router as projects_router
from companion.api.routes.users import router as users_router

__all__ = [
    "assistant_router",
    "auth_router",
    "billing_router",
    "chat_router",
    "documents_router",
    "health_router",
    "invitations_router",
    "members_router",
    "notifications_router",
    "projects_router",
    "users_router",
]
