"""Account registration and credential login."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from companion.core.errors import AuthenticationAppError, ConflictAppError, ValidationAppError
from companion.core.security import (
    create_access_token,
    hash_password,
    validate_password_strength,
    verify_password,
)
from companion.db.models import Plan, User
from companion.schemas.auth import LoginRequest, RegisterRequest
from companion.schemas.users import UserProfile
from companion.services.plans import effective_plan
from companion.utils.dates import utcnow

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Incorrect email or password"


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def to_profile(user: User) -> UserProfile:
    """Profile of ``user`` with the effective plan."""
    profile = UserProfile.model_validate(user)
    return profile.model_copy(update={"plan": effective_plan(user)})


def register_user(db: Session, payload: RegisterRequest) -> User:
    """Create a FREEMIUM account.

    Raises:
        ValidationAppError: Weak password or too-short name.
        ConflictAppError: Email already registered.
    """
    ok, reason = validate_password_strength(payload.password)
    if not ok:
        raise ValidationAppError(code="weak_password", message=reason)

    name = (payload.name or "").strip()
    if len(name) < 2:
        raise ValidationAppError(
            code="invalid_name",
            message="Name must be at least 2 characters",
        )

    email = payload.email.strip().lower()
    if db.scalar(select(User.id).where(User.email == email)) is not None:
        raise ConflictAppError(
            code="email_already_registered",
            message="An account already exists for this email",
        )

    user = User(
        email=email,
        password_hash=hash_password(payload.password),
        name=name,
        first_name=_clean(payload.first_name),
        last_name=_clean(payload.last_name),
        organization=_clean(payload.organization),
        role=_clean(payload.role),
        plan=Plan.FREEMIUM,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        # Lost a race with a concurrent registration of the same email
        db.rollback()
        raise ConflictAppError(
            code="email_already_registered",
            message="An account already exists for this email",
        ) from exc

    logger.info("auth.registered", extra={"user_id": user.id})
    return user


def authenticate(db: Session, payload: LoginRequest) -> tuple[User, str]:
    """Check credentials and issue a session token.

    The same error is raised for an unknown email and a wrong password.

    Returns:
        (user, token)
    """
    email = payload.email.strip().lower()
    user = db.scalar(select(User).where(User.email == email))

    if user is None or not verify_password(payload.password, user.password_hash):
        logger.warning(
            "auth.login_failed",
            extra={"email": email, "user_found": user is not None},
        )
        raise AuthenticationAppError(
            code="invalid_credentials",
            message=INVALID_CREDENTIALS,
        )

    user.last_login_at = utcnow()
    db.commit()

    token = create_access_token(user.id, user.email)
    logger.info("auth.login", extra={"user_id": user.id})
    return user, token
