from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from companion.core.auth import get_current_user
from companion.core.rate_limit import rate_limit
from companion.db.models import User
from companion.db.session import get_db
from companion.schemas.chat import MessageCreate, MessageOut
from companion.schemas.projects import (
    ActivityOut,
    InviteRequest,
    MemberOut,
    ProjectCreate,
    ProjectDetail,
    ProjectMembers,
    ProjectSummary,
    ProjectUpdate,
    RoleUpdate,
)
from companion.services import chat_service, member_service, project_service
from companion.services.activity_service import recent_activity

router = APIRouter(
    prefix="/projects",
    tags=["Projects"],
    dependencies=[Depends(rate_limit("api_general"))],
)


@router.get("", response_model=list[ProjectSummary])
def list_projects(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> list[ProjectSummary]:
    """Projects the user owns or has joined, most recently updated first."""
    return project_service.list_projects(db, user)


@router.post("", response_model=ProjectSummary, status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ProjectSummary:
    """Create a project owned by the caller.

    Raises:
        400 when the name is blank, 403 ``freemium_limit_reached`` past the
        FREEMIUM project quota.
    """
    return project_service.create_project(db, user, payload)


@router.get("/recent-activity", response_model=list[ActivityOut])
def project_activity(
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ActivityOut]:
    return [ActivityOut.model_validate(entry) for entry in recent_activity(db, user, limit)]


@router.get("/{project_id}", response_model=ProjectDetail)
def get_project(
    project_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ProjectDetail:
    return project_service.get_project_detail(db, user, project_id)


@router.patch("/{project_id}", response_model=ProjectSummary)
def update_project(
    project_id: str,
    payload: ProjectUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ProjectSummary:
    return project_service.update_project(db, user, project_id, payload)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(
    project_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    """Delete a project with its documents, members and messages (owner only)."""
    project_service.delete_project(db, user, project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{project_id}/members", response_model=ProjectMembers)
def list_members(
    project_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ProjectMembers:
    return member_service.list_members(db, user, project_id)


@router.post(
    "/{project_id}/invite",
    response_model=MemberOut,
    status_code=status.HTTP_201_CREATED,
)
def invite_member(
    project_id: str,
    payload: InviteRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MemberOut:
    """Invite a registered user; the membership stays pending until accepted.

    Raises:
        404 when no account has this email, 400 on self-invitation, 409 when
        already a member, 403 past the owner's collaborator quota.
    """
    return member_service.invite_member(db, user, project_id, payload)


@router.patch("/{project_id}/members/{member_id}/role", response_model=MemberOut)
def change_member_role(
    project_id: str,
    member_id: str,
    payload: RoleUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MemberOut:
    return member_service.change_role(db, user, project_id, member_id, payload.role)


@router.delete("/{project_id}/members/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_member(
    project_id: str,
    member_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    member_service.remove_member(db, user, project_id, member_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{project_id}/messages", response_model=list[MessageOut])
def list_messages(
    project_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[MessageOut]:
    return chat_service.list_project_messages(db, user, project_id)


@router.post(
    "/{project_id}/messages",
    response_model=MessageOut,
    status_code=status.HTTP_201_CREATED,
)
def post_message(
    project_id: str,
    payload: MessageCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageOut:
    return chat_service.post_message(db, user, project_id, payload)
