"""Projects and project-level access control."""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from companion.core.errors import NotFoundAppError, PermissionAppError, ValidationAppError
from companion.db.models import Document, MemberRole, Message, Project, ProjectMember, User
from companion.schemas.chat import MessageOut
from companion.schemas.projects import (
    MemberOut,
    ProjectCreate,
    ProjectDetail,
    ProjectDocumentOut,
    ProjectSummary,
    ProjectUpdate,
)
from companion.schemas.users import UserBrief
from companion.services.activity_service import record_audit
from companion.services.plans import ensure_can_create_project

logger = logging.getLogger(__name__)

RECENT_MESSAGES = 20


def get_project(db: Session, project_id: str) -> Project:
    project = db.get(Project, project_id)
    if project is None:
        raise NotFoundAppError(code="project_not_found", message="Project not found")
    return project


def accepted_membership(db: Session, project: Project, user: User) -> ProjectMember | None:
    return db.scalar(
        select(ProjectMember).where(
            ProjectMember.project_id == project.id,
            ProjectMember.user_id == user.id,
            ProjectMember.accepted_at.is_not(None),
        )
    )


def require_project_access(
    db: Session, project_id: str, user: User
) -> tuple[Project, ProjectMember | None]:
    """Load a project the user owns or has joined.

    Returns:
        (project, membership) where membership is None for the owner.

    Raises:
        NotFoundAppError: Unknown project.
        PermissionAppError: The user neither owns nor joined it.
    """
    project = get_project(db, project_id)
    if project.owner_id == user.id:
        return project, None

    member = accepted_membership(db, project, user)
    if member is None:
        raise PermissionAppError(
            code="project_access_denied",
            message="You do not have access to this project",
        )
    return project, member


def require_owner(db: Session, project_id: str, user: User) -> Project:
    project = get_project(db, project_id)
    if project.owner_id != user.id:
        raise PermissionAppError(
            code="owner_required",
            message="Only the project owner can perform this action",
        )
    return project


def role_of(project: Project, user: User, member: ProjectMember | None) -> MemberRole:
    if project.owner_id == user.id:
        return MemberRole.OWNER
    return member.role if member is not None else MemberRole.VIEWER


def _counts_by_project(db: Session, column, project_ids: list[str], *extra) -> dict[str, int]:
    if not project_ids:
        return {}
    rows = db.execute(
        select(column, func.count())
        .where(column.in_(project_ids), *extra)
        .group_by(column)
    )
    return {project_id: count for project_id, count in rows}


def _summaries(
    db: Session, projects: Iterable[Project], user: User
) -> list[ProjectSummary]:
    projects = list(projects)
    ids = [p.id for p in projects]
    documents = _counts_by_project(db, Document.project_id, ids)
    members = _counts_by_project(
        db, ProjectMember.project_id, ids, ProjectMember.accepted_at.is_not(None)
    )
    roles: dict[str, MemberRole] = {}
    if ids:
        roles = dict(
            db.execute(
                select(ProjectMember.project_id, ProjectMember.role).where(
                    ProjectMember.project_id.in_(ids),
                    ProjectMember.user_id == user.id,
                )
            ).all()
        )

    return [
        ProjectSummary(
            id=p.id,
            name=p.name,
            description=p.description,
            status=p.status,
            priority=p.priority,
            confidential=p.confidential,
            deadline=p.deadline,
            owner_id=p.owner_id,
            created_at=p.created_at,
            updated_at=p.updated_at,
            document_count=documents.get(p.id, 0),
            member_count=members.get(p.id, 0),
            user_role=MemberRole.OWNER if p.owner_id == user.id else roles.get(p.id, MemberRole.VIEWER),
        )
        for p in projects
    ]


def list_projects(db: Session, user: User) -> list[ProjectSummary]:
    """Projects owned or joined by the user, most recently updated first."""
    joined = select(ProjectMember.project_id).where(
        ProjectMember.user_id == user.id,
        ProjectMember.accepted_at.is_not(None),
    )
    projects = db.scalars(
        select(Project)
        .where(or_(Project.owner_id == user.id, Project.id.in_(joined)))
        .order_by(Project.updated_at.desc())
    )
    return _summaries(db, projects, user)


def create_project(db: Session, user: User, payload: ProjectCreate) -> ProjectSummary:
    name = payload.name.strip()
    if not name:
        raise ValidationAppError(code="project_name_required", message="Project name is required")

    ensure_can_create_project(db, user)

    project = Project(
        name=name,
        description=payload.description,
        confidential=payload.confidential,
        priority=payload.priority,
        deadline=payload.deadline,
        owner_id=user.id,
    )
    db.add(project)
    db.flush()
    record_audit(
        db,
        action="CREATE",
        entity_type="PROJECT",
        entity_id=project.id,
        user_id=user.id,
        project_id=project.id,
        details={"name": project.name},
    )
    db.commit()

    logger.info("project.created", extra={"project_id": project.id, "user_id": user.id})
    return _summaries(db, [project], user)[0]


def member_out(member: ProjectMember) -> MemberOut:
    return MemberOut(
        id=member.id,
        user=UserBrief.model_validate(member.user),
        role=member.role,
        can_edit=member.can_edit,
        can_comment=member.can_comment,
        can_invite=member.can_invite,
        invited_at=member.invited_at,
        accepted_at=member.accepted_at,
        pending=member.accepted_at is None,
    )


def get_project_detail(db: Session, user: User, project_id: str) -> ProjectDetail:
    project, _ = require_project_access(db, project_id, user)
    summary = _summaries(db, [project], user)[0]

    members = db.scalars(
        select(ProjectMember)
        .where(ProjectMember.project_id == project.id)
        .order_by(ProjectMember.invited_at)
    )
    documents = db.scalars(
        select(Document)
        .where(Document.project_id == project.id)
        .order_by(Document.created_at.desc())
    )
    messages = list(
        db.scalars(
            select(Message)
            .where(Message.project_id == project.id)
            .order_by(Message.created_at.desc())
            .limit(RECENT_MESSAGES)
        )
    )
    messages.reverse()

    return ProjectDetail(
        **summary.model_dump(),
        owner=UserBrief.model_validate(project.owner),
        members=[member_out(m) for m in members],
        documents=[ProjectDocumentOut.model_validate(d) for d in documents],
        messages=[MessageOut.model_validate(m) for m in messages],
    )


def update_project(
    db: Session, user: User, project_id: str, payload: ProjectUpdate
) -> ProjectSummary:
    """Apply the provided fields; owner or OWNER-role members only."""
    project, member = require_project_access(db, project_id, user)
    if role_of(project, user, member) != MemberRole.OWNER:
        raise PermissionAppError(
            code="project_update_denied",
            message="Only project owners can edit project settings",
        )

    # Only description and deadline can be cleared
    changes = {
        field: value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or field in ("description", "deadline")
    }
    if "name" in changes:
        name = changes["name"].strip()
        if not name:
            raise ValidationAppError(
                code="project_name_required", message="Project name is required"
            )
        changes["name"] = name

    for field, value in changes.items():
        setattr(project, field, value)

    record_audit(
        db,
        action="UPDATE",
        entity_type="PROJECT",
        entity_id=project.id,
        user_id=user.id,
        project_id=project.id,
        details={"fields": sorted(changes)},
    )
    db.commit()
    return _summaries(db, [project], user)[0]


def delete_project(db: Session, user: User, project_id: str) -> None:
    project = require_owner(db, project_id, user)
    record_audit(
        db,
        action="DELETE",
        entity_type="PROJECT",
        entity_id=project.id,
        user_id=user.id,
        details={"name": project.name},
    )
    db.delete(project)
    db.commit()
    logger.info("project.deleted", extra={"project_id": project_id, "user_id": user.id})
