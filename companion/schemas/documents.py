"""Schemas for documents, comments and the compare endpoint."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from companion.schemas.users import UserBrief


class DocumentSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    original_name: str
    mime_type: str
    size: int
    num_pages: int | None = None
    version: int
    confidential: bool
    project_id: str
    uploaded_by_id: str | None = None
    created_at: datetime
    updated_at: datetime
    version_count: int = 0
    comment_count: int = 0


class UploadResponse(DocumentSummary):
    """Stored document metadata; the file bytes are never echoed back."""

    text_preview: str | None = Field(
        default=None,
        description="First characters of the extracted text, if any could be extracted.",
    )
    text_extracted: bool = False


class DocumentVersionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    version: int
    size: int
    changes: str | None = None
    created_by_id: str | None = None
    created_at: datetime


class CommentCreate(BaseModel):
    content: str = Field(..., max_length=10000)
    page: int | None = Field(default=None, ge=1)
    position: dict[str, Any] | None = Field(
        default=None,
        description="Client-defined anchor (e.g., {x, y} on the page).",
    )


class CommentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    content: str
    page: int | None = None
    position: dict[str, Any] | None = None
    document_id: str
    user: UserBrief
    created_at: datetime


class DocumentDetail(DocumentSummary):
    project_name: str
    versions: list[DocumentVersionOut]
    comments: list[CommentOut]


class DocumentStats(BaseModel):
    total: int
    in_review: int
    validated: int
    pending: int


class CompareRequest(BaseModel):
    document_id_1: str = Field(..., min_length=1)
    document_id_2: str = Field(..., min_length=1)
    content_1: str | None = Field(
        default=None,
        description="Text to use instead of the stored text of document 1.",
    )
    content_2: str | None = Field(
        default=None,
        description="Text to use instead of the stored text of document 2.",
    )


class DiffLine(BaseModel):
    type: Literal["added", "removed", "unchanged"]
    value: str
    line_number: int


class DiffStats(BaseModel):
    total_lines: int
    added: int
    removed: int
    unchanged: int


class CompareResponse(BaseModel):
    document_id_1: str
    document_id_2: str
    differences: list[DiffLine]
    stats: DiffStats
