from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from companion.core.auth import get_current_user
from companion.core.rate_limit import rate_limit
from companion.db.models import User
from companion.db.session import get_db
from companion.schemas.chat import MarkReadRequest, MessagePage, UpdatedCount
from companion.services import chat_service

router = APIRouter(
    prefix="/chat",
    tags=["Chat"],
    dependencies=[Depends(rate_limit("api_general"))],
)


@router.get("/messages", response_model=MessagePage)
def page_messages(
    project_id: str = Query(...),
    limit: int = Query(chat_service.DEFAULT_PAGE_SIZE, ge=1, le=200),
    before: str | None = Query(None, description="Message id; load messages older than it."),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessagePage:
    return chat_service.page_messages(db, user, project_id, limit=limit, before=before)


@router.post("/read", response_model=UpdatedCount)
def mark_read(
    payload: MarkReadRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UpdatedCount:
    """Mark one message, or every message of a project, as read."""
    return UpdatedCount(updated_count=chat_service.mark_read(db, user, payload))
