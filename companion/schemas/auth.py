"""Request/response schemas for authentication."""

from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field

from companion.schemas.users import UserProfile


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., description="At least 8 characters.")
    name: str = Field(..., description="Display name, at least 2 characters.")
    first_name: str | None = None
    last_name: str | None = None
    organization: str | None = None
    role: str | None = Field(default=None, description="Job title.")


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    """Session issued on login.

    The token is also set as the httpOnly session cookie; API clients can
    send it back as a bearer token instead.
    """

    user: UserProfile
    access_token: str
    token_type: str = "bearer"


class MessageResponse(BaseModel):
    message: str
