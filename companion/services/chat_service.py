"""Project chat."""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from companion.core.errors import NotFoundAppError, ValidationAppError
from companion.db.models import Message, User
from companion.schemas.chat import MarkReadRequest, MessageCreate, MessageOut, MessagePage
from companion.services.project_service import require_project_access
from companion.utils.dates import utcnow

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50


def list_project_messages(db: Session, user: User, project_id: str) -> list[MessageOut]:
    project, _ = require_project_access(db, project_id, user)
    messages = db.scalars(
        select(Message)
        .where(Message.project_id == project.id)
        .order_by(Message.created_at.asc())
    )
    return [MessageOut.model_validate(m) for m in messages]


def post_message(
    db: Session, user: User, project_id: str, payload: MessageCreate
) -> MessageOut:
    project, _ = require_project_access(db, project_id, user)

    body = payload.content.strip()
    if not body:
        raise ValidationAppError(code="message_required", message="Message content is required")

    message = Message(
        content=body,
        attachments=payload.attachments,
        project_id=project.id,
        sender_id=user.id,
    )
    db.add(message)
    db.commit()

    logger.info("chat.message_posted", extra={"project_id": project.id, "message_id": message.id})
    return MessageOut.model_validate(message)


def page_messages(
    db: Session,
    user: User,
    project_id: str,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    before: str | None = None,
) -> MessagePage:
    """A page of messages ending just before the ``before`` message.

    The newest ``limit`` messages are fetched, then returned oldest first.
    """
    project, _ = require_project_access(db, project_id, user)

    query = select(Message).where(Message.project_id == project.id)
    if before is not None:
        cursor = db.get(Message, before)
        if cursor is None or cursor.project_id != project.id:
            raise ValidationAppError(code="invalid_cursor", message="Unknown message cursor")
        query = query.where(Message.created_at < cursor.created_at)

    page = list(db.scalars(query.order_by(Message.created_at.desc()).limit(limit)))
    has_more = len(page) == limit
    page.reverse()

    return MessagePage(
        messages=[MessageOut.model_validate(m) for m in page],
        has_more=has_more,
        next_before=page[0].id if has_more and page else None,
    )


def mark_read(db: Session, user: User, payload: MarkReadRequest) -> int:
    """Mark other people's messages as read.

    Returns:
        Number of messages that changed state.
    """
    now = utcnow()

    if payload.message_id:
        message = db.get(Message, payload.message_id)
        if message is None:
            raise NotFoundAppError(code="message_not_found", message="Message not found")
        require_project_access(db, message.project_id, user)
        if message.sender_id == user.id or message.is_read:
            return 0
        message.is_read = True
        message.read_at = now
        db.commit()
        return 1

    if payload.project_id:
        project, _ = require_project_access(db, payload.project_id, user)
        result = db.execute(
            update(Message)
            .where(
                Message.project_id == project.id,
                Message.sender_id != user.id,
                Message.is_read.is_(False),
            )
            .values(is_read=True, read_at=now)
        )
        db.commit()
        return result.rowcount or 0

    raise ValidationAppError(
        code="missing_target", message="Either message_id or project_id is required"
    )
