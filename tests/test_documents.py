"""Tests for document upload, download, comments and stats."""

import asyncio
from io import BytesIO

import pytest
from conftest import add_member, auth_headers, make_document, make_project, make_user
from docx import Document as DocxDocument
from pypdf import PdfWriter

from companion.core.config import settings
from companion.db.models import AuditLog, Document, DocumentVersion, MemberRole, ProjectStatus
from companion.services import document_service

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def docx_bytes(*paragraphs: str) -> bytes:
    document = DocxDocument()
    for paragraph in paragraphs:
        document.add_paragraph(paragraph)
    buffer = BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def pdf_bytes(pages: int = 1) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=595, height=842)
    buffer = BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.fixture
def project(db_session, user):
    return make_project(db_session, user)


def _upload(client, headers, project_id, filename, data, content_type, **form):
    return client.post(
        "/v1/documents/upload",
        files={"file": (filename, data, content_type)},
        data={"project_id": project_id, **form},
        headers=headers,
    )


class TestUpload:
    def test_docx_upload_extracts_text(self, client, db_session, user, headers, project) -> None:
        data = docx_bytes("CONTRAT DE BAIL", "Article 1 - Objet du bail")

        response = _upload(client, headers, project.id, "bail.docx", data, DOCX_MIME)

        assert response.status_code == 201
        body = response.json()
        assert body["name"] == "bail.docx"
        assert body["mime_type"] == DOCX_MIME
        assert body["size"] == len(data)
        assert body["version"] == 1
        assert body["version_count"] == 1
        assert body["text_extracted"] is True
        assert body["text_preview"].startswith("CONTRAT DE BAIL")
        assert "file_data" not in body

        stored = db_session.get(Document, body["id"])
        assert stored.file_data == data
        assert "Objet du bail" in stored.extracted_text
        version = db_session.query(DocumentVersion).filter_by(document_id=body["id"]).one()
        assert version.changes == "Initial version"
        audit = db_session.query(AuditLog).filter_by(entity_type="DOCUMENT").one()
        assert audit.action == "CREATE"
        assert audit.document_id == body["id"]

    def test_docx_sent_as_octet_stream_is_resolved_by_extension(
        self, client, headers, project
    ) -> None:
        response = _upload(
            client, headers, project.id, "bail.docx", docx_bytes("Texte"), "application/octet-stream"
        )

        assert response.status_code == 201

    def test_pdf_without_text_is_still_stored(self, client, headers, project) -> None:
        response = _upload(client, headers, project.id, "scan.pdf", pdf_bytes(2), "application/pdf")

        assert response.status_code == 201
        body = response.json()
        assert body["num_pages"] == 2
        assert body["text_extracted"] is False
        assert body["text_preview"] is None

    def test_confidential_flag(self, client, headers, project) -> None:
        response = _upload(
            client, headers, project.id, "scan.pdf", pdf_bytes(), "application/pdf", confidential="true"
        )

        assert response.json()["confidential"] is True

    def test_path_components_are_stripped_from_filename(self, client, headers, project) -> None:
        response = _upload(
            client, headers, project.id, "..\\..\\secret.pdf", pdf_bytes(), "application/pdf"
        )

        assert response.json()["name"] == "secret.pdf"

    def test_unsupported_type(self, client, headers, project) -> None:
        response = _upload(client, headers, project.id, "notes.txt", b"hello", "text/plain")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "unsupported_file_type"

    def test_spoofed_signature(self, client, headers, project) -> None:
        response = _upload(client, headers, project.id, "faux.pdf", b"MZ\x90\x00 not a pdf", "application/pdf")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_file_signature"

    def test_empty_file(self, client, headers, project) -> None:
        response = _upload(client, headers, project.id, "vide.pdf", b"", "application/pdf")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "empty_file"

    def test_corrupt_docx_is_rejected_as_unsafe(self, client, headers, project) -> None:
        response = _upload(client, headers, project.id, "casse.docx", b"PK\x03\x04garbage", DOCX_MIME)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "unsafe_file"

    def test_too_large(self, client, headers, project, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings.app, "max_upload_size_mb", 1)
        data = b"%PDF" + b"0" * (1024 * 1024 + 1)

        response = _upload(client, headers, project.id, "gros.pdf", data, "application/pdf")

        assert response.status_code == 413
        assert response.json()["detail"] == "File too large. Maximum size: 1MB"

    def test_freemium_document_quota(self, client, db_session, user, headers, project) -> None:
        for index in range(5):
            make_document(db_session, project, user, name=f"doc{index}.pdf")

        response = _upload(client, headers, project.id, "sixieme.pdf", pdf_bytes(), "application/pdf")

        assert response.status_code == 403
        details = response.json()["error"]["details"]
        assert details["resource"] == "documents per project"
        assert details["limit"] == 5

    def test_freemium_storage_quota(self, client, db_session, user, headers, project) -> None:
        archive = make_project(db_session, user, name="Archives 2023")
        stored = make_document(db_session, archive, user, name="archives.pdf")
        stored.size = 5 * 1024**3 - 10
        db_session.commit()

        response = _upload(client, headers, project.id, "annexe.pdf", pdf_bytes(), "application/pdf")

        assert response.status_code == 403
        error = response.json()["error"]
        assert error["code"] == "freemium_limit_reached"
        assert error["details"]["resource"] == "bytes of storage"
        assert error["details"]["limit"] == 5 * 1024**3
        assert error["details"]["current"] == 5 * 1024**3 - 10
        assert error["details"]["upgrade_url"] == "/pricing"

    def test_editor_may_upload(self, client, db_session, project) -> None:
        editor = make_user(db_session, "editeur@cabinet.fr", name="Eve Editeur")
        add_member(db_session, project, editor, MemberRole.EDITOR)

        response = _upload(
            client, auth_headers(editor), project.id, "scan.pdf", pdf_bytes(), "application/pdf"
        )

        assert response.status_code == 201

    def test_viewer_cannot_upload(self, client, db_session, project) -> None:
        viewer = make_user(db_session, "lecteur@cabinet.fr", name="Luc Lecteur")
        add_member(db_session, project, viewer, MemberRole.VIEWER)

        response = _upload(
            client, auth_headers(viewer), project.id, "scan.pdf", pdf_bytes(), "application/pdf"
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "project_not_found"

    def test_quota_check_runs_off_the_event_loop(
        self, client, headers, project, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        seen = []
        original = document_service.ensure_can_upload

        def recording(*args):
            try:
                asyncio.get_running_loop()
                seen.append("event loop")
            except RuntimeError:
                seen.append("worker thread")
            return original(*args)

        monkeypatch.setattr(document_service, "ensure_can_upload", recording)

        response = _upload(client, headers, project.id, "scan.pdf", pdf_bytes(), "application/pdf")

        assert response.status_code == 201
        assert seen == ["worker thread"]

    def test_extraction_failure_does_not_block_upload(
        self, client, headers, project, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def broken(data, kind):
            raise RuntimeError("parser crashed")

        monkeypatch.setattr("companion.services.document_service._extract_text", broken)

        response = _upload(client, headers, project.id, "bail.docx", docx_bytes("Texte"), DOCX_MIME)

        assert response.status_code == 201
        assert response.json()["text_extracted"] is False


class TestReadAccess:
    def test_list_returns_own_uploads_newest_first(self, client, db_session, user, headers, project) -> None:
        first = make_document(db_session, project, user, name="a.pdf")
        second = make_document(db_session, project, user, name="b.pdf")

        response = client.get("/v1/documents", headers=headers)

        assert response.status_code == 200
        assert [d["id"] for d in response.json()] == [second.id, first.id]

    def test_detail_includes_versions_and_comments(self, client, db_session, user, headers, project) -> None:
        document = make_document(db_session, project, user)
        client.post(f"/v1/documents/{document.id}/comments", json={"content": "A revoir"}, headers=headers)

        response = client.get(f"/v1/documents/{document.id}", headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["project_name"] == project.name
        assert data["comment_count"] == 1
        assert [c["content"] for c in data["comments"]] == ["A revoir"]

    def test_unknown_document(self, client, headers) -> None:
        response = client.get("/v1/documents/nope", headers=headers)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "document_not_found"

    def test_stranger_cannot_read(self, client, db_session, user, project) -> None:
        document = make_document(db_session, project, user)
        stranger = make_user(db_session, "intrus@cabinet.fr", name="Intrus")

        response = client.get(f"/v1/documents/{document.id}", headers=auth_headers(stranger))

        assert response.status_code == 403

    def test_download_returns_bytes_and_headers(self, client, db_session, user, headers, project) -> None:
        document = make_document(db_session, project, user, name="Bail résidentiel.pdf")

        response = client.get(f"/v1/documents/{document.id}/download", headers=headers)

        assert response.status_code == 200
        assert response.content == b"%PDF"
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["content-length"] == "4"
        assert response.headers["cache-control"] == "private, max-age=3600"
        disposition = response.headers["content-disposition"]
        assert disposition.startswith('inline; filename="Bail r?sidentiel.pdf"')
        assert "filename*=UTF-8''Bail%20r%C3%A9sidentiel.pdf" in disposition
        assert db_session.query(AuditLog).filter_by(action="DOWNLOAD").count() == 1

    def test_viewer_member_may_download(self, client, db_session, user, project) -> None:
        document = make_document(db_session, project, user)
        viewer = make_user(db_session, "lecteur@cabinet.fr", name="Luc Lecteur")
        add_member(db_session, project, viewer, MemberRole.VIEWER)

        response = client.get(f"/v1/documents/{document.id}/download", headers=auth_headers(viewer))

        assert response.status_code == 200


class TestComments:
    def test_add_and_list_newest_first(self, client, db_session, user, headers, project) -> None:
        document = make_document(db_session, project, user)

        created = client.post(
            f"/v1/documents/{document.id}/comments",
            json={"content": "  Clause 3 ambigue  ", "page": 2, "position": {"x": 10, "y": 20}},
            headers=headers,
        )
        client.post(f"/v1/documents/{document.id}/comments", json={"content": "Second"}, headers=headers)

        assert created.status_code == 201
        body = created.json()
        assert body["content"] == "Clause 3 ambigue"
        assert body["position"] == {"x": 10, "y": 20}
        assert body["user"]["id"] == user.id

        listed = client.get(f"/v1/documents/{document.id}/comments", headers=headers).json()
        assert [c["content"] for c in listed] == ["Second", "Clause 3 ambigue"]

    def test_blank_comment(self, client, db_session, user, headers, project) -> None:
        document = make_document(db_session, project, user)

        response = client.post(f"/v1/documents/{document.id}/comments", json={"content": "  "}, headers=headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "comment_required"


def test_stats_bucket_documents_by_project_status(client, db_session, user, headers) -> None:
    pending = make_project(db_session, user, "En attente")
    review = make_project(db_session, user, "En relecture")
    review.status = ProjectStatus.IN_REVIEW
    done = make_project(db_session, user, "Termine")
    done.status = ProjectStatus.COMPLETED
    db_session.commit()
    make_document(db_session, pending, user)
    make_document(db_session, review, user)
    make_document(db_session, review, user)
    make_document(db_session, done, user)

    response = client.get("/v1/documents/stats", headers=headers)

    assert response.status_code == 200
    assert response.json() == {"total": 4, "in_review": 2, "validated": 1, "pending": 1}
