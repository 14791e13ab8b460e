"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests can build an app with overridden dependencies.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from companion.api.routes import (
    assistant_router,
    auth_router,
    billing_router,
    chat_router,
    documents_router,
    health_router,
    invitations_router,
    members_router,
    notifications_router,
    projects_router,
    users_router,
)
from companion.core.config import DEFAULT_JWT_SECRET, settings
from companion.core.exception_handlers import setup_exception_handlers
from companion.core.logging import configure_logging
from companion.core.middleware import request_id_middleware
from companion.core.openapi import apply_openapi_customizations
from companion.db.session import init_db

logger = logging.getLogger(__name__)

API_ROUTERS = (
    auth_router,
    users_router,
    projects_router,
    invitations_router,
    members_router,
    documents_router,
    chat_router,
    notifications_router,
    billing_router,
    assistant_router,
)


def _check_secrets() -> None:
    if settings.auth.jwt_secret != DEFAULT_JWT_SECRET:
        return
    if settings.is_production:
        raise RuntimeError("AUTH_JWT_SECRET must be set in production")
    logger.warning("auth.default_jwt_secret", extra={"app_env": settings.app_env})


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("app.startup", extra={"app_env": settings.app_env})
    yield
    logger.info("app.shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)
    _check_secrets()

    app = FastAPI(
        title="Companion API",
        description=(
            "Collaboration workspace for legal teams: projects, document "
            "storage and comparison, team invitations, project chat, a legal "
            "assistant, STANDARD plan billing and RGPD data export."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    for router in API_ROUTERS:
        app.include_router(router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (security schemes, tags, exemptions)
    apply_openapi_customizations(app)

    return app
