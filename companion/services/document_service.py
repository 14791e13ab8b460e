"""Document storage, text extraction and comments.

Uploaded bytes are stored in the database next to the extracted text. The
upload flow mirrors a parsing pipeline: resolve the kind, read with a size
cap, check magic bytes and archive safety, apply plan quotas, then extract
text in a worker thread under a timeout.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import PurePath
from typing import Iterable

from fastapi import UploadFile
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from companion.core.config import settings
from companion.core.errors import NotFoundAppError, ValidationAppError
from companion.core.file_validation import read_upload_file_limited
from companion.db.models import (
    Comment,
    Document,
    DocumentVersion,
    Project,
    ProjectStatus,
    User,
)
from companion.schemas.documents import (
    CommentCreate,
    CommentOut,
    DocumentDetail,
    DocumentStats,
    DocumentSummary,
    DocumentVersionOut,
    UploadResponse,
)
from companion.services.activity_service import accessible_project_ids, record_audit
from companion.services.plans import ensure_can_upload
from companion.services.project_service import (
    accepted_membership,
    get_project,
    require_project_access,
)
from companion.utils.docx_extractor import extract_text_from_docx_bytes
from companion.utils.file_validators import (
    CANONICAL_MIME,
    DocumentKind,
    check_zip_safety,
    has_valid_signature,
    kind_from_upload,
)
from companion.utils.pdf_extractor import extract_text_from_pdf_bytes
from companion.utils.text_normalizer import normalize_text, preview

logger = logging.getLogger(__name__)


def _extract_text(data: bytes, kind: DocumentKind) -> tuple[str, dict]:
    if kind == "pdf":
        return extract_text_from_pdf_bytes(data)
    return extract_text_from_docx_bytes(data)


async def extract_text_with_timeout(data: bytes, kind: DocumentKind) -> tuple[str, dict]:
    """Run extraction in the default executor, bounded by the configured timeout.

    Raises:
        asyncio.TimeoutError: Extraction took too long.
    """
    loop = asyncio.get_running_loop()
    timeout_seconds = settings.app.file_extraction_timeout_seconds
    try:
        return await asyncio.wait_for(
            loop.run_in_executor(None, _extract_text, data, kind),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.warning(
            "document.extraction_timeout",
            extra={"file_type": kind, "timeout_seconds": timeout_seconds},
        )
        raise


def _uploadable_project(db: Session, user: User, project_id: str) -> Project:
    """Projects the user owns or may edit; anything else looks missing."""
    project = get_project(db, project_id)
    if project.owner_id == user.id:
        return project
    member = accepted_membership(db, project, user)
    if member is None or not member.can_edit:
        raise NotFoundAppError(code="project_not_found", message="Project not found")
    return project


def _safe_filename(filename: str | None, kind: DocumentKind) -> str:
    name = PurePath((filename or "").replace("\\", "/")).name.strip()
    return name or f"document.{kind}"


def _counts(db: Session, column, document_ids: list[str]) -> dict[str, int]:
    if not document_ids:
        return {}
    rows = db.execute(
        select(column, func.count()).where(column.in_(document_ids)).group_by(column)
    )
    return {document_id: count for document_id, count in rows}


def _summaries(db: Session, documents: Iterable[Document]) -> list[DocumentSummary]:
    documents = list(documents)
    ids = [d.id for d in documents]
    versions = _counts(db, DocumentVersion.document_id, ids)
    comments = _counts(db, Comment.document_id, ids)
    return [
        DocumentSummary.model_validate(d).model_copy(
            update={
                "version_count": versions.get(d.id, 0),
                "comment_count": comments.get(d.id, 0),
            }
        )
        for d in documents
    ]


async def upload_document(
    db: Session,
    user: User,
    *,
    project_id: str,
    file: UploadFile,
    confidential: bool = False,
) -> UploadResponse:
    """Validate, store and index an uploaded PDF or DOCX.

    Raises:
        NotFoundAppError: Project missing or not editable by the user.
        ValidationAppError: Unsupported, empty, spoofed or unsafe file.
        PlanLimitAppError: FREEMIUM document or storage quota reached.
        HTTPException: 413 when the file exceeds the upload limit.
    """
    project = await run_in_threadpool(_uploadable_project, db, user, project_id)

    kind = kind_from_upload(file.content_type, file.filename)
    if kind is None:
        raise ValidationAppError(
            code="unsupported_file_type",
            message="Unsupported file type. Only PDF and DOCX are allowed.",
        )

    data = await read_upload_file_limited(file)
    if not data:
        raise ValidationAppError(code="empty_file", message="Empty file.")

    if not has_valid_signature(data, kind):
        raise ValidationAppError(
            code="invalid_file_signature",
            message=f"File content does not match the declared type. Expected {kind.upper()}.",
        )

    if kind == "docx":
        try:
            check_zip_safety(data)
        except ValueError as exc:
            raise ValidationAppError(code="unsafe_file", message=str(exc)) from exc

    await run_in_threadpool(ensure_can_upload, db, user, project, len(data))

    text = ""
    num_pages: int | None = None
    try:
        raw_text, meta = await extract_text_with_timeout(data, kind)
        text = normalize_text(raw_text)
        num_pages = meta.get("pages")
    except asyncio.TimeoutError:
        pass  # already logged; the document is stored without text
    except Exception:
        logger.warning(
            "document.extraction_failed",
            extra={"file_type": kind, "project_id": project.id},
            exc_info=True,
        )

    return await run_in_threadpool(
        _store_upload,
        db,
        user,
        project,
        filename=_safe_filename(file.filename, kind),
        kind=kind,
        data=data,
        text=text,
        num_pages=num_pages,
        confidential=confidential,
    )


def _store_upload(
    db: Session,
    user: User,
    project: Project,
    *,
    filename: str,
    kind: DocumentKind,
    data: bytes,
    text: str,
    num_pages: int | None,
    confidential: bool,
) -> UploadResponse:
    document = Document(
        name=filename,
        original_name=filename,
        mime_type=CANONICAL_MIME[kind],
        size=len(data),
        file_data=data,
        extracted_text=text or None,
        num_pages=num_pages,
        version=1,
        confidential=confidential,
        project_id=project.id,
        uploaded_by_id=user.id,
    )
    db.add(document)
    db.flush()
    db.add(
        DocumentVersion(
            document_id=document.id,
            version=1,
            size=len(data),
            changes="Initial version",
            created_by_id=user.id,
        )
    )
    record_audit(
        db,
        action="CREATE",
        entity_type="DOCUMENT",
        entity_id=document.id,
        user_id=user.id,
        project_id=project.id,
        document_id=document.id,
        details={"name": filename, "size": len(data)},
    )
    db.commit()

    logger.info(
        "document.uploaded",
        extra={
            "document_id": document.id,
            "project_id": project.id,
            "file_type": kind,
            "size": len(data),
            "text_chars": len(text),
        },
    )

    summary = _summaries(db, [document])[0]
    return UploadResponse(
        **summary.model_dump(),
        text_preview=preview(text, settings.app.preview_chars),
        text_extracted=bool(text),
    )


def list_documents(db: Session, user: User) -> list[DocumentSummary]:
    documents = db.scalars(
        select(Document)
        .where(Document.uploaded_by_id == user.id)
        .order_by(Document.created_at.desc())
    )
    return _summaries(db, documents)


def document_stats(db: Session, user: User) -> DocumentStats:
    """Documents of accessible projects, bucketed by project status."""
    project_ids = accessible_project_ids(db, user)
    if not project_ids:
        return DocumentStats(total=0, in_review=0, validated=0, pending=0)

    rows = db.execute(
        select(Project.status, func.count(Document.id))
        .join(Document, Document.project_id == Project.id)
        .where(Project.id.in_(project_ids))
        .group_by(Project.status)
    ).all()
    by_status = {status: count for status, count in rows}

    return DocumentStats(
        total=sum(by_status.values()),
        in_review=by_status.get(ProjectStatus.IN_REVIEW, 0),
        validated=by_status.get(ProjectStatus.COMPLETED, 0),
        pending=by_status.get(ProjectStatus.PENDING, 0),
    )


def get_accessible_document(db: Session, user: User, document_id: str) -> Document:
    document = db.get(Document, document_id)
    if document is None:
        raise NotFoundAppError(code="document_not_found", message="Document not found")
    require_project_access(db, document.project_id, user)
    return document


def _comments(db: Session, document: Document) -> list[CommentOut]:
    comments = db.scalars(
        select(Comment)
        .where(Comment.document_id == document.id)
        .order_by(Comment.created_at.desc())
    )
    return [CommentOut.model_validate(c) for c in comments]


def get_document_detail(db: Session, user: User, document_id: str) -> DocumentDetail:
    document = get_accessible_document(db, user, document_id)
    summary = _summaries(db, [document])[0]
    return DocumentDetail(
        **summary.model_dump(),
        project_name=document.project.name,
        versions=[DocumentVersionOut.model_validate(v) for v in document.versions],
        comments=_comments(db, document),
    )


def download_document(db: Session, user: User, document_id: str) -> tuple[Document, bytes]:
    """Return the document and its bytes, recording the download."""
    document = get_accessible_document(db, user, document_id)
    data = document.file_data

    record_audit(
        db,
        action="DOWNLOAD",
        entity_type="DOCUMENT",
        entity_id=document.id,
        user_id=user.id,
        project_id=document.project_id,
        document_id=document.id,
    )
    db.commit()
    return document, data


def list_comments(db: Session, user: User, document_id: str) -> list[CommentOut]:
    document = get_accessible_document(db, user, document_id)
    return _comments(db, document)


def add_comment(
    db: Session, user: User, document_id: str, payload: CommentCreate
) -> CommentOut:
    document = get_accessible_document(db, user, document_id)

    body = payload.content.strip()
    if not body:
        raise ValidationAppError(
            code="comment_required", message="Comment content is required"
        )

    comment = Comment(
        content=body,
        page=payload.page,
        position=payload.position,
        document_id=document.id,
        user_id=user.id,
    )
    db.add(comment)
    db.commit()
    return CommentOut.model_validate(comment)
