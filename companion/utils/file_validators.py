"""Content checks for uploaded documents.

The declared MIME type is only a hint: the magic bytes must agree with it,
and ZIP-based formats (DOCX) are inspected for decompression bombs before
any parser touches them.
"""

from __future__ import annotations

import logging
import zipfile
from io import BytesIO
from pathlib import PurePath
from typing import Literal

logger = logging.getLogger(__name__)

DocumentKind = Literal["pdf", "docx"]

MIME_TYPES: dict[str, DocumentKind] = {
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.ms-word.document.macroEnabled.12": "docx",
}

CANONICAL_MIME: dict[DocumentKind, str] = {
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

_EXTENSIONS: dict[str, DocumentKind] = {".pdf": "pdf", ".docx": "docx"}

_MAGIC: dict[DocumentKind, bytes] = {
    "pdf": b"%PDF",
    "docx": b"PK\x03\x04",
}


def kind_from_upload(content_type: str | None, filename: str | None) -> DocumentKind | None:
    """Resolve the document kind from the MIME type, then the file extension.

    Browsers frequently send ``application/octet-stream`` for DOCX files, so
    the extension is consulted when the MIME type is unknown.
    """
    if content_type:
        kind = MIME_TYPES.get(content_type.split(";")[0].strip().lower())
        if kind:
            return kind
    if filename:
        return _EXTENSIONS.get(PurePath(filename).suffix.lower())
    return None


def has_valid_signature(data: bytes, kind: DocumentKind) -> bool:
    """Return True when ``data`` starts with the magic bytes of ``kind``."""
    magic = _MAGIC.get(kind)
    if magic and data.startswith(magic):
        return True

    logger.warning(
        "file_signature.invalid",
        extra={"expected_type": kind, "actual_prefix": data[:8] if data else "EMPTY"},
    )
    return False


def check_zip_safety(
    data: bytes,
    *,
    max_ratio: float = 100.0,
    max_uncompressed_mb: int = 100,
) -> None:
    """Reject archives whose expansion ratio or total size is abnormal.

    Raises:
        ValueError: If the archive is malformed or looks like a zip bomb.
    """
    try:
        with zipfile.ZipFile(BytesIO(data)) as archive:
            entries = archive.infolist()
    except zipfile.BadZipFile as exc:
        logger.warning("zip_safety.bad_zip")
        raise ValueError("Invalid ZIP file structure") from exc

    compressed = sum(entry.compress_size for entry in entries)
    uncompressed = sum(entry.file_size for entry in entries)

    if compressed == 0:
        raise ValueError("Invalid ZIP file: compressed size is zero")

    ratio = uncompressed / compressed
    if ratio > max_ratio:
        logger.warning(
            "zip_safety.suspicious_ratio",
            extra={"ratio": round(ratio, 1), "max_ratio": max_ratio},
        )
        raise ValueError(f"Suspicious compression ratio: {ratio:.1f}x")

    if uncompressed > max_uncompressed_mb * 1024 * 1024:
        logger.warning(
            "zip_safety.excessive_size",
            extra={"uncompressed_bytes": uncompressed, "max_mb": max_uncompressed_mb},
        )
        raise ValueError(
            f"Uncompressed size exceeds {max_uncompressed_mb}MB"
        )
