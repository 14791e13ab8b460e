"""Self-service account management and RGPD data export."""

from __future__ import annotations

import logging
import math
from datetime import timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from companion.adapters.payments.base import AbstractPaymentProvider
from companion.core.errors import PaymentProviderAppError, PermissionAppError
from companion.db.models import (
    AuditLog,
    Comment,
    Document,
    Message,
    Notification,
    Project,
    ProjectMember,
    User,
)
from companion.schemas.users import UserCounts, UserDetail, UserStats, UserUpdate
from companion.services.activity_service import record_audit
from companion.services.auth_service import to_profile
from companion.utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)

EXPORT_TYPE = "RGPD_FULL_DATA_EXPORT"
EXPORT_VERSION = "1.0"
EXPORT_AUDIT_LIMIT = 100
HOURS_SAVED_PER_ACTION = 0.5


def _count(db: Session, column, *where) -> int:
    return db.scalar(select(func.count(column)).where(*where)) or 0


def _collaborator_count(db: Session, user: User) -> int:
    owned = select(Project.id).where(Project.owner_id == user.id)
    return db.scalar(
        select(func.count(func.distinct(ProjectMember.user_id))).where(
            ProjectMember.project_id.in_(owned),
            ProjectMember.accepted_at.is_not(None),
        )
    ) or 0


def get_user_detail(db: Session, user: User) -> UserDetail:
    counts = UserCounts(
        projects=_count(db, Project.id, Project.owner_id == user.id),
        documents=_count(db, Document.id, Document.uploaded_by_id == user.id),
        comments=_count(db, Comment.id, Comment.user_id == user.id),
    )
    return UserDetail(**to_profile(user).model_dump(), counts=counts)


def update_user(db: Session, user: User, payload: UserUpdate) -> UserDetail:
    """Apply profile changes. Plans only change through billing.

    Raises:
        PermissionAppError: The payload tries to set ``plan``.
    """
    if payload.plan is not None:
        raise PermissionAppError(
            code="plan_change_forbidden",
            message="The plan can only be changed through billing",
        )

    changes = payload.model_dump(exclude_unset=True, exclude={"plan"})
    for field, value in changes.items():
        if field == "name" and value is None:
            continue
        setattr(user, field, value.strip() if isinstance(value, str) else value)

    record_audit(
        db,
        action="UPDATE",
        entity_type="USER",
        entity_id=user.id,
        user_id=user.id,
        details={"fields": sorted(changes)},
    )
    db.commit()
    return get_user_detail(db, user)


def delete_user(
    db: Session, user: User, provider: AbstractPaymentProvider | None
) -> None:
    """Delete the account and everything it owns.

    The provider subscription is canceled first; a provider failure is
    logged and does not block the deletion. The DELETE audit entry survives
    with its user reference nulled.
    """
    subscription = user.subscription
    if subscription is not None and provider is not None:
        try:
            provider.cancel_subscription(subscription.stripe_subscription_id)
        except PaymentProviderAppError as exc:
            logger.warning(
                "user.delete_subscription_cancel_failed",
                extra={"user_id": user.id, "error_code": exc.code},
            )

    user_id = user.id
    record_audit(
        db,
        action="DELETE",
        entity_type="USER",
        entity_id=user_id,
        user_id=user_id,
    )
    db.flush()
    db.delete(user)
    db.commit()
    logger.info("user.deleted", extra={"user_id": user_id})


def _iso(value) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value is not None else None


def build_export(db: Session, user: User) -> dict[str, Any]:
    """Everything stored about the user, as a JSON-ready dict.

    File contents are not included; documents are listed by metadata.
    """
    now = utcnow()

    projects = list(
        db.scalars(
            select(Project).where(Project.owner_id == user.id).order_by(Project.created_at)
        )
    )
    memberships = list(
        db.scalars(
            select(ProjectMember)
            .where(ProjectMember.user_id == user.id)
            .order_by(ProjectMember.invited_at)
        )
    )
    documents = list(
        db.scalars(
            select(Document)
            .where(Document.uploaded_by_id == user.id)
            .order_by(Document.created_at)
        )
    )
    comments = list(
        db.scalars(select(Comment).where(Comment.user_id == user.id).order_by(Comment.created_at))
    )
    messages = list(
        db.scalars(select(Message).where(Message.sender_id == user.id).order_by(Message.created_at))
    )
    notifications = list(
        db.scalars(
            select(Notification)
            .where(Notification.user_id == user.id)
            .order_by(Notification.created_at)
        )
    )
    audit_logs = list(
        db.scalars(
            select(AuditLog)
            .where(AuditLog.user_id == user.id)
            .order_by(AuditLog.created_at.desc())
            .limit(EXPORT_AUDIT_LIMIT)
        )
    )

    subscription = user.subscription
    created_at = as_utc(user.created_at)

    return {
        "metadata": {
            "export_date": now.isoformat(),
            "export_type": EXPORT_TYPE,
            "version": EXPORT_VERSION,
            "user_id": user.id,
        },
        "profile": {
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "organization": user.organization,
            "organization_siret": user.organization_siret,
            "role": user.role,
            "phone": user.phone,
            "bio": user.bio,
            "avatar": user.avatar,
            "plan": user.plan.value,
            "created_at": _iso(user.created_at),
            "updated_at": _iso(user.updated_at),
            "last_login_at": _iso(user.last_login_at),
        },
        "projects": [
            {
                "id": p.id,
                "name": p.name,
                "description": p.description,
                "status": p.status.value,
                "priority": p.priority.value,
                "confidential": p.confidential,
                "deadline": _iso(p.deadline),
                "created_at": _iso(p.created_at),
                "updated_at": _iso(p.updated_at),
                "document_count": _count(db, Document.id, Document.project_id == p.id),
                "member_count": _count(
                    db,
                    ProjectMember.id,
                    ProjectMember.project_id == p.id,
                    ProjectMember.accepted_at.is_not(None),
                ),
                "message_count": _count(db, Message.id, Message.project_id == p.id),
            }
            for p in projects
        ],
        "memberships": [
            {
                "project_id": m.project_id,
                "project_name": m.project.name,
                "role": m.role.value,
                "permissions": {
                    "can_edit": m.can_edit,
                    "can_comment": m.can_comment,
                    "can_invite": m.can_invite,
                },
                "invited_at": _iso(m.invited_at),
                "accepted_at": _iso(m.accepted_at),
            }
            for m in memberships
        ],
        "documents": [
            {
                "id": d.id,
                "name": d.name,
                "original_name": d.original_name,
                "mime_type": d.mime_type,
                "size": d.size,
                "num_pages": d.num_pages,
                "version": d.version,
                "confidential": d.confidential,
                "project_id": d.project_id,
                "created_at": _iso(d.created_at),
            }
            for d in documents
        ],
        "comments": [
            {
                "id": c.id,
                "content": c.content,
                "page": c.page,
                "document_id": c.document_id,
                "created_at": _iso(c.created_at),
            }
            for c in comments
        ],
        "messages": [
            {
                "id": m.id,
                "content": m.content,
                "project_id": m.project_id,
                "created_at": _iso(m.created_at),
            }
            for m in messages
        ],
        "notifications": [
            {
                "id": n.id,
                "type": n.type.value,
                "title": n.title,
                "message": n.message,
                "is_read": n.is_read,
                "created_at": _iso(n.created_at),
            }
            for n in notifications
        ],
        "subscription": (
            {
                "plan": subscription.plan.value,
                "status": subscription.status.value,
                "current_period_start": _iso(subscription.current_period_start),
                "current_period_end": _iso(subscription.current_period_end),
                "cancel_at_period_end": subscription.cancel_at_period_end,
                "canceled_at": _iso(subscription.canceled_at),
                "created_at": _iso(subscription.created_at),
            }
            if subscription is not None
            else None
        ),
        "audit_logs": [
            {
                "action": a.action,
                "entity_type": a.entity_type,
                "entity_id": a.entity_id,
                "details": a.details,
                "created_at": _iso(a.created_at),
            }
            for a in audit_logs
        ],
        "statistics": {
            "total_projects": len(projects),
            "total_memberships": len(memberships),
            "total_documents": len(documents),
            "total_comments": len(comments),
            "total_messages": len(messages),
            "total_notifications": len(notifications),
            "account_age_days": (now - created_at).days if created_at else 0,
        },
    }


def export_user_data(db: Session, user: User) -> tuple[dict[str, Any], str]:
    """Build the RGPD export and record it.

    Returns:
        (payload, attachment filename)
    """
    payload = build_export(db, user)
    record_audit(
        db,
        action="EXPORT",
        entity_type="USER",
        entity_id=user.id,
        user_id=user.id,
        details={"export_type": EXPORT_TYPE},
    )
    db.commit()

    filename = f"companion-data-export-{user.email}-{utcnow():%Y-%m-%d}.json"
    logger.info("user.exported", extra={"user_id": user.id})
    return payload, filename


def user_stats(db: Session, user: User) -> UserStats:
    since = utcnow() - timedelta(days=30)
    actions = _count(db, AuditLog.id, AuditLog.user_id == user.id, AuditLog.created_at >= since)
    return UserStats(
        projects=_count(db, Project.id, Project.owner_id == user.id),
        documents=_count(db, Document.id, Document.uploaded_by_id == user.id),
        collaborators=_collaborator_count(db, user),
        time_saved_hours=math.floor(actions * HOURS_SAVED_PER_ACTION),
    )
