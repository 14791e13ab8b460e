"""Session authentication for FastAPI routes.

A session is a signed token carried either in the ``auth-token`` cookie
(browser clients) or an ``Authorization: Bearer`` header (API clients).

Usage:
    @router.get("/me")
    def me(user: User = Depends(get_current_user)):
        ...
"""

from __future__ import annotations

import hashlib
import logging
from typing import Annotated

from fastapi import Depends, Header, Request, Response
from sqlalchemy.orm import Session

from companion.core.config import settings
from companion.core.errors import AuthenticationAppError
from companion.core.security import decode_access_token
from companion.db.models import User
from companion.db.session import get_db

logger = logging.getLogger(__name__)


def extract_token(request: Request, authorization: str | None) -> str | None:
    """Return the session token from the bearer header or the session cookie."""
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()

    return request.cookies.get(settings.auth.cookie_name) or None


def _token_fingerprint(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()[:16]


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    authorization: Annotated[str | None, Header()] = None,
) -> User:
    """FastAPI dependency resolving the authenticated user.

    Raises:
        AuthenticationAppError: If the token is missing, invalid, expired, or
            refers to a user that no longer exists.
    """
    token = extract_token(request, authorization)
    if not token:
        raise AuthenticationAppError(
            code="unauthorized",
            message="Authentication required",
        )

    payload = decode_access_token(token)
    if not payload or not payload.get("sub"):
        logger.warning(
            "auth.invalid_token",
            extra={"token_hash": _token_fingerprint(token)},
        )
        raise AuthenticationAppError(
            code="invalid_token",
            message="Invalid or expired session",
        )

    user = db.get(User, payload["sub"])
    if user is None:
        logger.warning("auth.unknown_user", extra={"user_id": payload["sub"]})
        raise AuthenticationAppError(
            code="invalid_token",
            message="Invalid or expired session",
        )

    return user


def set_session_cookie(response: Response, token: str) -> None:
    """Attach the session cookie (httpOnly, SameSite=Lax)."""
    response.set_cookie(
        key=settings.auth.cookie_name,
        value=token,
        max_age=settings.auth.token_expire_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.auth.cookie_secure,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(key=settings.auth.cookie_name, path="/")
