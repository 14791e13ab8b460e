from __future__ import annotations

from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, status
from sqlalchemy.orm import Session

from companion.core.auth import get_current_user
from companion.core.rate_limit import rate_limit
from companion.db.models import User
from companion.db.session import get_db
from companion.schemas.documents import (
    CommentCreate,
    CommentOut,
    CompareRequest,
    CompareResponse,
    DocumentDetail,
    DocumentStats,
    DocumentSummary,
    UploadResponse,
)
from companion.services import document_service
from companion.services.compare_service import compare_documents

router = APIRouter(
    prefix="/documents",
    tags=["Documents"],
    dependencies=[Depends(rate_limit("api_general"))],
)


def _content_disposition(filename: str) -> str:
    fallback = filename.encode("ascii", "replace").decode("ascii").replace('"', "'")
    return f"inline; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


@router.post(
    "/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("upload"))],
)
async def upload_document(
    file: UploadFile = File(..., description="PDF or DOCX document"),
    project_id: str = Form(...),
    confidential: bool = Form(False),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UploadResponse:
    """Upload a document into a project.

    The file type is checked against its magic bytes and text is extracted
    for search, comparison and the assistant.

    Args:
        file: Uploaded PDF or DOCX.
        project_id: Target project, owned or editable by the caller.
        confidential: Flag the document as confidential.

    Returns:
        UploadResponse: Stored metadata with a short text preview.

    Raises:
        400 for unsupported or malformed files, 403 past the FREEMIUM quotas,
        404 for an unknown or read-only project, 413 above the size limit.
    """
    return await document_service.upload_document(
        db, user, project_id=project_id, file=file, confidential=confidential
    )


@router.get("", response_model=list[DocumentSummary])
def list_documents(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> list[DocumentSummary]:
    """Documents uploaded by the caller, newest first."""
    return document_service.list_documents(db, user)


@router.get("/stats", response_model=DocumentStats)
def document_stats(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> DocumentStats:
    return document_service.document_stats(db, user)


@router.post(
    "/compare",
    response_model=CompareResponse,
    dependencies=[Depends(rate_limit("compare"))],
)
def compare(
    payload: CompareRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CompareResponse:
    """Line diff between two documents.

    ``content_1``/``content_2`` replace the stored text of the matching
    document when provided.
    """
    return compare_documents(db, user, payload)


@router.get("/{document_id}", response_model=DocumentDetail)
def get_document(
    document_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> DocumentDetail:
    return document_service.get_document_detail(db, user, document_id)


@router.get("/{document_id}/download")
def download_document(
    document_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    document, data = document_service.download_document(db, user, document_id)
    return Response(
        content=data,
        media_type=document.mime_type,
        headers={
            "Content-Disposition": _content_disposition(document.original_name),
            "Content-Length": str(len(data)),
            "Cache-Control": "private, max-age=3600",
        },
    )


@router.get("/{document_id}/comments", response_model=list[CommentOut])
def list_comments(
    document_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[CommentOut]:
    return document_service.list_comments(db, user, document_id)


@router.post(
    "/{document_id}/comments",
    response_model=CommentOut,
    status_code=status.HTTP_201_CREATED,
)
def add_comment(
    document_id: str,
    payload: CommentCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CommentOut:
    return document_service.add_comment(db, user, document_id, payload)
