"""Unit tests for DOCX text extraction and text normalization."""

import io

import pytest
from docx import Document

from companion.core.config import settings
from companion.utils.docx_extractor import extract_text_from_docx_bytes
from companion.utils.text_normalizer import normalize_text, preview


def _create_docx(*paragraphs: str) -> bytes:
    doc = Document()
    for paragraph in paragraphs:
        doc.add_paragraph(paragraph)
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


class TestDOCXExtractor:
    def test_extracts_non_empty_paragraphs(self):
        text, meta = extract_text_from_docx_bytes(
            _create_docx("CONTRAT DE BAIL", "", "Article 1 - Objet")
        )

        assert text == "CONTRAT DE BAIL\nArticle 1 - Objet"
        assert meta == {"pages": None, "paragraphs": 2, "truncated": False}

    def test_paragraph_cap(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(settings.app, "max_docx_paragraphs", 2)

        text, meta = extract_text_from_docx_bytes(_create_docx("Un", "Deux", "Trois"))

        assert text == "Un\nDeux"
        assert meta["truncated"] is True

    def test_empty_document(self):
        doc = Document()
        for para in doc.paragraphs:
            p = para._element
            p.getparent().remove(p)
        buffer = io.BytesIO()
        doc.save(buffer)

        text, meta = extract_text_from_docx_bytes(buffer.getvalue())

        assert text == ""
        assert meta["paragraphs"] == 0


class TestNormalizeText:
    def test_whitespace_and_line_endings(self):
        raw = "Article 1\r\n\tLe   loyer  \r\n\n\n\nArticle 2\x00"

        assert normalize_text(raw) == "Article 1\n Le loyer\n\nArticle 2"

    def test_preview(self):
        assert preview("abcdef", 3) == "abc"
        assert preview("", 3) is None
        assert preview(None, 3) is None
