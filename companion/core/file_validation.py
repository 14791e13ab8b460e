"""Bounded reading of multipart uploads."""

from __future__ import annotations

import logging

from fastapi import HTTPException, UploadFile, status

from companion.core.config import settings

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def _too_large(max_mb: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        detail=f"File too large. Maximum size: {max_mb}MB",
    )


async def read_upload_file_limited(file: UploadFile, max_mb: int | None = None) -> bytes:
    """Read an upload in chunks, stopping as soon as it exceeds the limit.

    The declared multipart size is checked first; the chunked read enforces
    the limit again for clients that lie or omit it.

    Raises:
        HTTPException: 413 when the file exceeds ``max_mb`` (default
            ``APP_MAX_UPLOAD_SIZE_MB``).
    """
    limit_mb = max_mb or settings.app.max_upload_size_mb
    max_bytes = limit_mb * 1024 * 1024

    declared = getattr(file, "size", None)
    if declared is not None and declared > max_bytes:
        logger.warning(
            "upload.rejected_by_header",
            extra={"file_size": declared, "max_bytes": max_bytes},
        )
        raise _too_large(limit_mb)

    received = 0
    chunks: list[bytes] = []
    while chunk := await file.read(CHUNK_SIZE):
        received += len(chunk)
        if received > max_bytes:
            logger.warning(
                "upload.rejected_by_chunked_read",
                extra={"size": received, "max_bytes": max_bytes},
            )
            raise _too_large(limit_mb)
        chunks.append(chunk)

    return b"".join(chunks)
