"""Schemas for projects, memberships and activity."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from companion.db.models import MemberRole, Priority, ProjectStatus
from companion.schemas.chat import MessageOut
from companion.schemas.users import UserBrief


class ProjectCreate(BaseModel):
    name: str = Field(..., max_length=255)
    description: str | None = None
    confidential: bool = False
    priority: Priority = Priority.MEDIUM
    deadline: datetime | None = None


class ProjectUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    description: str | None = None
    status: ProjectStatus | None = None
    priority: Priority | None = None
    confidential: bool | None = None
    deadline: datetime | None = None


class ProjectSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None = None
    status: ProjectStatus
    priority: Priority
    confidential: bool
    deadline: datetime | None = None
    owner_id: str
    created_at: datetime
    updated_at: datetime
    document_count: int = 0
    member_count: int = Field(0, description="Accepted members, owner excluded.")
    user_role: MemberRole = Field(..., description="Caller's role on this project.")


class MemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user: UserBrief
    role: MemberRole
    can_edit: bool
    can_comment: bool
    can_invite: bool
    invited_at: datetime
    accepted_at: datetime | None = None
    pending: bool = Field(..., description="True until the invitee accepts.")


class ProjectDocumentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    mime_type: str
    size: int
    version: int
    created_at: datetime


class ProjectDetail(ProjectSummary):
    owner: UserBrief
    members: list[MemberOut]
    documents: list[ProjectDocumentOut]
    messages: list[MessageOut] = Field(
        default_factory=list, description="Latest messages, oldest first."
    )


class InviteRequest(BaseModel):
    email: EmailStr
    role: MemberRole = MemberRole.EDITOR


class RoleUpdate(BaseModel):
    role: MemberRole


class InvitationProject(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None = None


class InvitationOut(BaseModel):
    """A pending invitation addressed to the current user."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    role: MemberRole
    invited_at: datetime
    project: InvitationProject
    invited_by: UserBrief | None = None


class TeamProject(BaseModel):
    id: str
    name: str
    role: MemberRole


class TeamMember(BaseModel):
    user: UserBrief
    project_count: int
    projects: list[TeamProject]
    last_accepted_at: datetime | None = None
    last_login_at: datetime | None = None


class TeamStats(BaseModel):
    total_members: int
    active_members: int = Field(..., description="Members seen in the last 24 hours.")
    total_projects: int
    pending_invitations: int


class ActivityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    action: str
    entity_type: str
    entity_id: str | None = None
    project_id: str | None = None
    document_id: str | None = None
    details: dict[str, Any] | None = None
    user: UserBrief | None = None
    created_at: datetime


class ProjectMembers(BaseModel):
    owner: UserBrief
    members: list[MemberOut] = Field(..., description="Accepted and pending members.")
