from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from companion.core.auth import clear_session_cookie, get_current_user, set_session_cookie
from companion.core.rate_limit import rate_limit
from companion.db.models import User
from companion.db.session import get_db
from companion.schemas.auth import LoginRequest, LoginResponse, MessageResponse, RegisterRequest
from companion.schemas.users import UserProfile
from companion.services.auth_service import authenticate, register_user, to_profile

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post(
    "/register",
    response_model=UserProfile,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("register"))],
)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> UserProfile:
    """Create a FREEMIUM account.

    Returns:
        UserProfile: The new account.

    Raises:
        400 for a weak password or short name, 409 when the email is taken.
    """
    user = register_user(db, payload)
    return to_profile(user)


@router.post(
    "/login",
    response_model=LoginResponse,
    dependencies=[Depends(rate_limit("login"))],
)
def login(
    payload: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
) -> LoginResponse:
    """Open a session: sets the ``auth-token`` cookie and returns the token."""
    user, token = authenticate(db, payload)
    set_session_cookie(response, token)
    return LoginResponse(user=to_profile(user), access_token=token)


@router.post("/logout", response_model=MessageResponse)
def logout(response: Response) -> MessageResponse:
    clear_session_cookie(response)
    return MessageResponse(message="Logged out")


@router.get(
    "/me",
    response_model=UserProfile,
    dependencies=[Depends(rate_limit("api_general"))],
)
def me(user: User = Depends(get_current_user)) -> UserProfile:
    return to_profile(user)
