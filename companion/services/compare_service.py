"""Line-level comparison of two documents."""

from __future__ import annotations

import difflib
import logging

from sqlalchemy.orm import Session

from companion.db.models import User
from companion.schemas.documents import CompareRequest, CompareResponse, DiffLine, DiffStats
from companion.services.document_service import get_accessible_document

logger = logging.getLogger(__name__)


def _split_lines(text: str) -> list[str]:
    """Split on newlines only, dropping a blank final line."""
    lines = text.split("\n")
    if lines[-1].strip() == "":
        lines.pop()
    return lines


def diff_lines(old: str, new: str) -> list[DiffLine]:
    """Diff two texts line by line.

    In a replaced block every removed line comes before the added ones.
    ``line_number`` counts emitted lines from 0.
    """
    a = _split_lines(old)
    b = _split_lines(new)
    matcher = difflib.SequenceMatcher(None, a, b, autojunk=False)

    lines: list[DiffLine] = []

    def emit(kind: str, values: list[str]) -> None:
        for value in values:
            lines.append(DiffLine(type=kind, value=value, line_number=len(lines)))

    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            emit("unchanged", a[i1:i2])
        elif tag == "delete":
            emit("removed", a[i1:i2])
        elif tag == "insert":
            emit("added", b[j1:j2])
        else:
            emit("removed", a[i1:i2])
            emit("added", b[j1:j2])

    return lines


def diff_stats(lines: list[DiffLine]) -> DiffStats:
    counts = {"added": 0, "removed": 0, "unchanged": 0}
    for line in lines:
        counts[line.type] += 1
    return DiffStats(total_lines=len(lines), **counts)


def _text_for(db: Session, user: User, document_id: str, override: str | None) -> str:
    if override is not None:
        return override
    document = get_accessible_document(db, user, document_id)
    return document.extracted_text or ""


def compare_documents(db: Session, user: User, payload: CompareRequest) -> CompareResponse:
    """Compare two documents, using the provided texts when given.

    Raises:
        NotFoundAppError: A stored text is needed and the document is missing.
        PermissionAppError: The user cannot access a document's project.
    """
    old = _text_for(db, user, payload.document_id_1, payload.content_1)
    new = _text_for(db, user, payload.document_id_2, payload.content_2)

    lines = diff_lines(old, new)
    stats = diff_stats(lines)

    logger.info(
        "compare.completed",
        extra={
            "document_id_1": payload.document_id_1,
            "document_id_2": payload.document_id_2,
            "total_lines": stats.total_lines,
            "added": stats.added,
            "removed": stats.removed,
        },
    )
    return CompareResponse(
        document_id_1=payload.document_id_1,
        document_id_2=payload.document_id_2,
        differences=lines,
        stats=stats,
    )
