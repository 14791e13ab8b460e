from io import BytesIO

from pypdf import PdfReader

from companion.core.config import settings


def extract_text_from_pdf_bytes(data: bytes) -> tuple[str, dict]:
    """Extract text from PDF bytes.

    Only the first ``APP_MAX_PDF_PAGES`` pages are read; the page count
    always reflects the whole document.

    Returns:
        tuple: (text, {"pages": total_pages, "truncated": bool})
    """
    reader = PdfReader(BytesIO(data))
    page_count = len(reader.pages)
    max_pages = settings.app.max_pdf_pages

    texts = [(page.extract_text() or "") for page in reader.pages[:max_pages]]

    return "\n".join(texts).strip(), {
        "pages": page_count,
        "truncated": page_count > max_pages,
    }
