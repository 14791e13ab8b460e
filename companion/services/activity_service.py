"""Notifications and audit trail.

Both helpers only add rows to the session; the caller commits together with
the change being recorded.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from companion.db.models import (
    AuditLog,
    Notification,
    NotificationType,
    Project,
    ProjectMember,
    User,
)

logger = logging.getLogger(__name__)

NOTIFICATION_PAGE_SIZE = 50


def notify(
    db: Session,
    *,
    user_id: str,
    type: NotificationType,
    title: str,
    message: str,
    link: str | None = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        link=link,
    )
    db.add(notification)
    return notification


def record_audit(
    db: Session,
    *,
    action: str,
    entity_type: str,
    entity_id: str | None,
    user_id: str | None,
    project_id: str | None = None,
    document_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> AuditLog:
    entry = AuditLog(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        project_id=project_id,
        document_id=document_id,
        details=details,
    )
    db.add(entry)
    logger.info(
        "audit.recorded",
        extra={
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "user_id": user_id,
        },
    )
    return entry


def list_notifications(db: Session, user: User) -> tuple[list[Notification], int]:
    """Latest notifications and the user's total unread count."""
    items = list(
        db.scalars(
            select(Notification)
            .where(Notification.user_id == user.id)
            .order_by(Notification.created_at.desc())
            .limit(NOTIFICATION_PAGE_SIZE)
        )
    )
    unread = db.scalar(
        select(func.count(Notification.id)).where(
            Notification.user_id == user.id, Notification.is_read.is_(False)
        )
    ) or 0
    return items, unread


def mark_all_read(db: Session, user: User) -> int:
    result = db.execute(
        update(Notification)
        .where(Notification.user_id == user.id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    db.commit()
    return result.rowcount or 0


def accessible_project_ids(db: Session, user: User) -> list[str]:
    """Ids of projects the user owns or has joined."""
    return list(
        db.scalars(
            select(Project.id)
            .outerjoin(ProjectMember, ProjectMember.project_id == Project.id)
            .where(
                or_(
                    Project.owner_id == user.id,
                    (ProjectMember.user_id == user.id)
                    & ProjectMember.accepted_at.is_not(None),
                )
            )
            .distinct()
        )
    )


def recent_activity(db: Session, user: User, limit: int = 10) -> list[AuditLog]:
    """Audit entries on the user's accessible projects, newest first."""
    project_ids = accessible_project_ids(db, user)
    if not project_ids:
        return []
    return list(
        db.scalars(
            select(AuditLog)
            .where(AuditLog.project_id.in_(project_ids))
            .order_by(AuditLog.created_at.desc())
            .limit(limit)
        )
    )
