"""Plan resolution and FREEMIUM quota checks."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from companion.core.errors import PlanLimitAppError
from companion.db.models import (
    Document,
    Plan,
    Project,
    ProjectMember,
    SubscriptionStatus,
    User,
)

logger = logging.getLogger(__name__)

GB = 1024 * 1024 * 1024


@dataclass(frozen=True)
class PlanLimits:
    """Quotas of a plan; ``None`` means unlimited."""

    projects: int | None
    collaborators: int | None  # owner included
    storage_bytes: int | None
    documents_per_project: int | None
    ai_requests: int | None


PLAN_LIMITS: dict[Plan, PlanLimits] = {
    Plan.FREEMIUM: PlanLimits(
        projects=1,
        collaborators=2,
        storage_bytes=5 * GB,
        documents_per_project=5,
        ai_requests=50,
    ),
    Plan.STANDARD: PlanLimits(
        projects=None,
        collaborators=None,
        storage_bytes=None,
        documents_per_project=None,
        ai_requests=None,
    ),
}

PLAN_FEATURES: dict[Plan, list[str]] = {
    Plan.FREEMIUM: [
        "1 project",
        "2 collaborators (owner included)",
        "5 documents per project",
        "5 GB storage",
        "50 assistant requests",
    ],
    Plan.STANDARD: [
        "Unlimited projects",
        "Unlimited collaborators",
        "Unlimited documents",
        "Unlimited storage",
        "Unlimited assistant requests",
        "Priority support",
    ],
}


def effective_plan(user: User) -> Plan:
    """The subscription's plan while it is ACTIVE, otherwise the stored plan."""
    subscription = user.subscription
    if subscription is not None and subscription.status == SubscriptionStatus.ACTIVE:
        return subscription.plan
    return user.plan


def limits_for(user: User) -> PlanLimits:
    return PLAN_LIMITS[effective_plan(user)]


def ensure_can_create_project(db: Session, user: User) -> None:
    """Raises PlanLimitAppError when the owner reached the project quota."""
    limit = limits_for(user).projects
    if limit is None:
        return

    current = db.scalar(
        select(func.count(Project.id)).where(Project.owner_id == user.id)
    ) or 0
    if current >= limit:
        logger.info(
            "plan.limit_reached",
            extra={"user_id": user.id, "resource": "projects", "limit": limit},
        )
        raise PlanLimitAppError(resource="projects", limit=limit, current=current)


def ensure_can_add_collaborator(db: Session, project: Project) -> None:
    """Check the owner's collaborator quota before inviting someone new.

    Pending invitations count: the owner, every member row and the new
    invitee must fit in the quota.
    """
    limit = limits_for(project.owner).collaborators
    if limit is None:
        return

    members = db.scalar(
        select(func.count(ProjectMember.id)).where(ProjectMember.project_id == project.id)
    ) or 0
    current = members + 1
    if current + 1 > limit:
        logger.info(
            "plan.limit_reached",
            extra={"project_id": project.id, "resource": "collaborators", "limit": limit},
        )
        raise PlanLimitAppError(resource="collaborators", limit=limit, current=current)


def ensure_can_upload(db: Session, user: User, project: Project, size: int) -> None:
    """Check the per-project document quota and the uploader's storage quota."""
    limits = limits_for(user)

    if limits.documents_per_project is not None:
        documents = db.scalar(
            select(func.count(Document.id)).where(Document.project_id == project.id)
        ) or 0
        if documents >= limits.documents_per_project:
            raise PlanLimitAppError(
                resource="documents per project",
                limit=limits.documents_per_project,
                current=documents,
            )

    if limits.storage_bytes is not None:
        used = db.scalar(
            select(func.coalesce(func.sum(Document.size), 0)).where(
                Document.uploaded_by_id == user.id
            )
        ) or 0
        if used + size > limits.storage_bytes:
            raise PlanLimitAppError(
                resource="bytes of storage",
                limit=limits.storage_bytes,
                current=int(used),
            )
