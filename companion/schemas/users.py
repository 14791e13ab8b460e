"""Schemas for accounts, profiles and RGPD statistics."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from companion.db.models import Plan


class UserBrief(BaseModel):
    """Public identity of a user as shown to collaborators."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    avatar: str | None = None


class UserProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    first_name: str | None = None
    last_name: str | None = None
    organization: str | None = None
    organization_siret: str | None = None
    role: str | None = Field(default=None, description="Job title (e.g., lawyer, paralegal).")
    phone: str | None = None
    bio: str | None = None
    avatar: str | None = None
    plan: Plan = Field(..., description="Effective plan (subscription plan while ACTIVE).")
    created_at: datetime
    last_login_at: datetime | None = None


class UserCounts(BaseModel):
    projects: int = Field(..., description="Projects owned by the user.")
    documents: int = Field(..., description="Documents uploaded by the user.")
    comments: int


class UserDetail(UserProfile):
    counts: UserCounts


class UserUpdate(BaseModel):
    """Self-service profile changes.

    ``plan`` is accepted only so an attempt to change it can be refused
    explicitly; plans change through billing.
    """

    name: str | None = Field(default=None, min_length=2, max_length=255)
    first_name: str | None = Field(default=None, max_length=120)
    last_name: str | None = Field(default=None, max_length=120)
    phone: str | None = Field(default=None, max_length=40)
    bio: str | None = None
    avatar: str | None = Field(default=None, max_length=500)
    organization: str | None = Field(default=None, max_length=255)
    organization_siret: str | None = Field(default=None, max_length=32)
    plan: str | None = None


class UserStats(BaseModel):
    projects: int
    documents: int
    collaborators: int = Field(..., description="Distinct accepted members across owned projects.")
    time_saved_hours: int = Field(
        ..., description="Half an hour per recorded action over the last 30 days."
    )


class PlanResponse(BaseModel):
    plan: str = Field(..., description="Effective plan in lower case.")
