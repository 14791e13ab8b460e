from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from companion.core.auth import get_current_user
from companion.core.rate_limit import rate_limit
from companion.db.models import User
from companion.db.session import get_db
from companion.schemas.chat import UpdatedCount
from companion.schemas.notifications import NotificationList, NotificationOut
from companion.services.activity_service import list_notifications, mark_all_read

router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"],
    dependencies=[Depends(rate_limit("api_general"))],
)


@router.get("", response_model=NotificationList)
def get_notifications(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> NotificationList:
    items, unread = list_notifications(db, user)
    return NotificationList(
        notifications=[NotificationOut.model_validate(n) for n in items],
        unread_count=unread,
    )


@router.post("/mark-all-read", response_model=UpdatedCount)
def read_all(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> UpdatedCount:
    return UpdatedCount(updated_count=mark_all_read(db, user))
