from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from companion.schemas.users import UserBrief


class MessageCreate(BaseModel):
    content: str = Field(..., max_length=10000)
    attachments: list[dict[str, Any]] | None = None


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    content: str
    attachments: list[dict[str, Any]] | None = None
    project_id: str
    sender: UserBrief
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime


class MessagePage(BaseModel):
    """A page of messages in chronological order.

    Pass ``next_before`` as ``before`` to load older messages.
    """

    messages: list[MessageOut]
    has_more: bool
    next_before: str | None = None


class MarkReadRequest(BaseModel):
    message_id: str | None = None
    project_id: str | None = None


class UpdatedCount(BaseModel):
    updated_count: int
