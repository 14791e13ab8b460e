"""Invitations addressed to the caller and the team overview of their projects."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from companion.core.auth import get_current_user
from companion.core.rate_limit import rate_limit
from companion.db.models import User
from companion.db.session import get_db
from companion.schemas.projects import InvitationOut, MemberOut, TeamMember, TeamStats
from companion.services import member_service

invitations_router = APIRouter(
    prefix="/invitations",
    tags=["Members"],
    dependencies=[Depends(rate_limit("api_general"))],
)
members_router = APIRouter(
    prefix="/members",
    tags=["Members"],
    dependencies=[Depends(rate_limit("api_general"))],
)


@invitations_router.get("", response_model=list[InvitationOut])
def list_invitations(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> list[InvitationOut]:
    """Pending invitations of the caller, newest first."""
    return member_service.list_invitations(db, user)


@invitations_router.post("/{invitation_id}/accept", response_model=MemberOut)
def accept_invitation(
    invitation_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MemberOut:
    return member_service.accept_invitation(db, user, invitation_id)


@invitations_router.post("/{invitation_id}/decline", status_code=status.HTTP_204_NO_CONTENT)
def decline_invitation(
    invitation_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    member_service.decline_invitation(db, user, invitation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@members_router.get("", response_model=list[TeamMember])
def list_team(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> list[TeamMember]:
    return member_service.team_members(db, user)


@members_router.get("/stats", response_model=TeamStats)
def team_stats(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> TeamStats:
    return member_service.team_stats(db, user)
