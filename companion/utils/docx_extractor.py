from io import BytesIO

from docx import Document

from companion.core.config import settings


def extract_text_from_docx_bytes(data: bytes) -> tuple[str, dict]:
    """Extract paragraph text from DOCX bytes.

    DOCX has no page model, so ``pages`` is always None.

    Returns:
        tuple: (text, {"pages": None, "paragraphs": int, "truncated": bool})
    """
    doc = Document(BytesIO(data))
    max_paras = settings.app.max_docx_paragraphs

    paragraphs = [p.text for p in doc.paragraphs[:max_paras] if p.text]

    return "\n".join(paragraphs).strip(), {
        "pages": None,
        "paragraphs": len(paragraphs),
        "truncated": len(doc.paragraphs) > max_paras,
    }
