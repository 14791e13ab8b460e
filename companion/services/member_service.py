"""Project membership, invitations and the team overview."""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from companion.core.errors import (
    ConflictAppError,
    NotFoundAppError,
    PermissionAppError,
    ValidationAppError,
)
from companion.db.models import MemberRole, NotificationType, Project, ProjectMember, User
from companion.schemas.projects import (
    InvitationOut,
    InviteRequest,
    MemberOut,
    ProjectMembers,
    TeamMember,
    TeamProject,
    TeamStats,
)
from companion.schemas.users import UserBrief
from companion.services.activity_service import notify, record_audit
from companion.services.plans import ensure_can_add_collaborator
from companion.services.project_service import (
    member_out,
    require_owner,
    require_project_access,
)
from companion.utils.dates import utcnow

logger = logging.getLogger(__name__)

# (can_edit, can_comment, can_invite)
ROLE_PERMISSIONS: dict[MemberRole, tuple[bool, bool, bool]] = {
    MemberRole.OWNER: (True, True, True),
    MemberRole.EDITOR: (True, False, False),
    MemberRole.VIEWER: (False, False, False),
}


def apply_role(member: ProjectMember, role: MemberRole) -> None:
    member.role = role
    member.can_edit, member.can_comment, member.can_invite = ROLE_PERMISSIONS[role]


def _project_member(db: Session, project: Project, member_id: str) -> ProjectMember:
    member = db.get(ProjectMember, member_id)
    if member is None or member.project_id != project.id:
        raise NotFoundAppError(code="member_not_found", message="Member not found")
    return member


def list_members(db: Session, user: User, project_id: str) -> ProjectMembers:
    project, _ = require_project_access(db, project_id, user)
    members = db.scalars(
        select(ProjectMember)
        .where(ProjectMember.project_id == project.id)
        .order_by(ProjectMember.invited_at)
    )
    return ProjectMembers(
        owner=UserBrief.model_validate(project.owner),
        members=[member_out(m) for m in members],
    )


def invite_member(
    db: Session, user: User, project_id: str, payload: InviteRequest
) -> MemberOut:
    """Create a pending membership for a registered user.

    A previous pending invitation of the same user is replaced. The owner's
    collaborator quota is checked with pending invitations included.
    """
    project, member = require_project_access(db, project_id, user)
    if member is not None and not member.can_invite:
        raise PermissionAppError(
            code="invite_denied",
            message="You are not allowed to invite members to this project",
        )

    email = payload.email.strip().lower()
    invitee = db.scalar(select(User).where(User.email == email))
    if invitee is None:
        raise NotFoundAppError(
            code="user_not_found",
            message="No account is registered with this email",
        )
    if invitee.id == user.id:
        raise ValidationAppError(code="self_invitation", message="You cannot invite yourself")
    if invitee.id == project.owner_id:
        raise ConflictAppError(
            code="already_member", message="This user is already a member of the project"
        )

    existing = db.scalar(
        select(ProjectMember).where(
            ProjectMember.project_id == project.id,
            ProjectMember.user_id == invitee.id,
        )
    )
    if existing is not None:
        if existing.accepted_at is not None:
            raise ConflictAppError(
                code="already_member",
                message="This user is already a member of the project",
            )
        db.delete(existing)
        db.flush()

    ensure_can_add_collaborator(db, project)

    invitation = ProjectMember(
        project_id=project.id,
        user_id=invitee.id,
        invited_by_id=user.id,
        invited_at=utcnow(),
    )
    apply_role(invitation, payload.role)
    db.add(invitation)
    db.flush()

    notify(
        db,
        user_id=invitee.id,
        type=NotificationType.PROJECT_INVITATION,
        title="New project invitation",
        message=f"{user.name} invited you to join the project {project.name}",
        link="/invitations",
    )
    record_audit(
        db,
        action="INVITE",
        entity_type="PROJECT_MEMBER",
        entity_id=invitation.id,
        user_id=user.id,
        project_id=project.id,
        details={"invitee_id": invitee.id, "role": payload.role.value},
    )
    db.commit()

    logger.info(
        "member.invited",
        extra={"project_id": project.id, "invitee_id": invitee.id, "role": payload.role.value},
    )
    return member_out(invitation)


def change_role(
    db: Session, user: User, project_id: str, member_id: str, role: MemberRole
) -> MemberOut:
    project = require_owner(db, project_id, user)
    member = _project_member(db, project, member_id)

    previous = member.role
    apply_role(member, role)

    notify(
        db,
        user_id=member.user_id,
        type=NotificationType.ROLE_CHANGED,
        title="Your role changed",
        message=f"Your role on {project.name} is now {role.value}",
        link=f"/projects/{project.id}",
    )
    record_audit(
        db,
        action="CHANGE_ROLE",
        entity_type="PROJECT_MEMBER",
        entity_id=member.id,
        user_id=user.id,
        project_id=project.id,
        details={"from": previous.value, "to": role.value},
    )
    db.commit()
    return member_out(member)


def remove_member(db: Session, user: User, project_id: str, member_id: str) -> None:
    project = require_owner(db, project_id, user)
    member = _project_member(db, project, member_id)
    if member.user_id == project.owner_id:
        raise ValidationAppError(
            code="cannot_remove_owner", message="The project owner cannot be removed"
        )

    notify(
        db,
        user_id=member.user_id,
        type=NotificationType.TEAM_MEMBER_REMOVED,
        title="Removed from a project",
        message=f"You were removed from the project {project.name}",
    )
    record_audit(
        db,
        action="REMOVE_MEMBER",
        entity_type="PROJECT_MEMBER",
        entity_id=member.id,
        user_id=user.id,
        project_id=project.id,
        details={"member_user_id": member.user_id},
    )
    db.delete(member)
    db.commit()


def list_invitations(db: Session, user: User) -> list[InvitationOut]:
    pending = db.scalars(
        select(ProjectMember)
        .where(ProjectMember.user_id == user.id, ProjectMember.accepted_at.is_(None))
        .order_by(ProjectMember.invited_at.desc())
    )
    return [InvitationOut.model_validate(m) for m in pending]


def _pending_invitation(db: Session, user: User, invitation_id: str) -> ProjectMember:
    invitation = db.get(ProjectMember, invitation_id)
    if (
        invitation is None
        or invitation.user_id != user.id
        or invitation.accepted_at is not None
    ):
        raise NotFoundAppError(code="invitation_not_found", message="Invitation not found")
    return invitation


def accept_invitation(db: Session, user: User, invitation_id: str) -> MemberOut:
    invitation = _pending_invitation(db, user, invitation_id)
    project = invitation.project
    invitation.accepted_at = utcnow()

    notify(
        db,
        user_id=project.owner_id,
        type=NotificationType.TEAM_MEMBER_ADDED,
        title="Invitation accepted",
        message=f"{user.name} joined the project {project.name}",
        link=f"/projects/{project.id}",
    )
    record_audit(
        db,
        action="ACCEPT",
        entity_type="PROJECT_MEMBER",
        entity_id=invitation.id,
        user_id=user.id,
        project_id=project.id,
    )
    db.commit()
    return member_out(invitation)


def decline_invitation(db: Session, user: User, invitation_id: str) -> None:
    invitation = _pending_invitation(db, user, invitation_id)
    project = invitation.project

    notify(
        db,
        user_id=project.owner_id,
        type=NotificationType.SYSTEM,
        title="Invitation declined",
        message=f"{user.name} declined the invitation to {project.name}",
    )
    record_audit(
        db,
        action="DECLINE",
        entity_type="PROJECT_MEMBER",
        entity_id=invitation.id,
        user_id=user.id,
        project_id=project.id,
    )
    db.delete(invitation)
    db.commit()


def team_members(db: Session, user: User) -> list[TeamMember]:
    """Accepted members of the user's projects, one entry per person.

    Entries are ordered by the member's latest acceptance.
    """
    rows = db.execute(
        select(ProjectMember, Project)
        .join(Project, Project.id == ProjectMember.project_id)
        .where(Project.owner_id == user.id, ProjectMember.accepted_at.is_not(None))
        .order_by(ProjectMember.accepted_at.desc())
    ).all()

    team: dict[str, TeamMember] = {}
    for member, project in rows:
        entry = team.get(member.user_id)
        if entry is None:
            entry = TeamMember(
                user=UserBrief.model_validate(member.user),
                project_count=0,
                projects=[],
                last_accepted_at=member.accepted_at,
                last_login_at=member.user.last_login_at,
            )
            team[member.user_id] = entry
        entry.projects.append(TeamProject(id=project.id, name=project.name, role=member.role))
        entry.project_count += 1

    return list(team.values())


def team_stats(db: Session, user: User) -> TeamStats:
    owned = select(Project.id).where(Project.owner_id == user.id)
    accepted = (
        select(ProjectMember.user_id)
        .where(ProjectMember.project_id.in_(owned), ProjectMember.accepted_at.is_not(None))
        .distinct()
    )

    total_members = db.scalar(
        select(func.count()).select_from(accepted.subquery())
    ) or 0
    active_members = db.scalar(
        select(func.count(User.id)).where(
            User.id.in_(accepted),
            User.last_login_at >= utcnow() - timedelta(hours=24),
        )
    ) or 0
    total_projects = db.scalar(
        select(func.count(Project.id)).where(Project.owner_id == user.id)
    ) or 0
    pending = db.scalar(
        select(func.count(ProjectMember.id)).where(
            ProjectMember.project_id.in_(owned), ProjectMember.accepted_at.is_(None)
        )
    ) or 0

    return TeamStats(
        total_members=total_members,
        active_members=active_members,
        total_projects=total_projects,
        pending_invitations=pending,
    )
