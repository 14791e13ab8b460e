"""Password hashing and session token helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from companion.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(
    user_id: str,
    email: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed session token for ``user_id``."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(days=settings.auth.token_expire_days)
    )
    claims: dict[str, Any] = {"sub": user_id, "email": email, "exp": expire}
    return jwt.encode(claims, settings.auth.jwt_secret, algorithm=settings.auth.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Decode and validate a session token; ``None`` when invalid or expired."""
    try:
        return jwt.decode(
            token,
            settings.auth.jwt_secret,
            algorithms=[settings.auth.jwt_algorithm],
        )
    except JWTError:
        return None


def validate_password_strength(password: str) -> tuple[bool, str]:
    """Check the minimum password policy."""
    min_length = settings.auth.min_password_length
    if len(password) < min_length:
        return False, f"Password must be at least {min_length} characters"
    return True, "Password is valid"
