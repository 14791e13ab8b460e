"""Tests for project chat, pagination and read receipts."""

from datetime import timedelta

import pytest
from conftest import add_member, auth_headers, make_project, make_user

from companion.db.models import Message
from companion.utils.dates import utcnow


@pytest.fixture
def project(db_session, user):
    return make_project(db_session, user)


@pytest.fixture
def colleague(db_session, project):
    colleague = make_user(db_session, "collegue@cabinet.fr", name="Jean Collegue")
    add_member(db_session, project, colleague)
    return colleague


def seed_messages(db, project, sender, count):
    start = utcnow() - timedelta(minutes=count)
    messages = []
    for index in range(count):
        message = Message(
            content=f"message {index}",
            project_id=project.id,
            sender_id=sender.id,
            created_at=start + timedelta(minutes=index),
        )
        db.add(message)
        messages.append(message)
    db.commit()
    return messages


class TestProjectMessages:
    def test_post_and_list(self, client, project, headers, colleague) -> None:
        created = client.post(
            f"/v1/projects/{project.id}/messages",
            json={"content": "  Bonjour  ", "attachments": [{"name": "bail.pdf"}]},
            headers=headers,
        )
        client.post(
            f"/v1/projects/{project.id}/messages",
            json={"content": "Salut"},
            headers=auth_headers(colleague),
        )

        assert created.status_code == 201
        assert created.json()["content"] == "Bonjour"
        assert created.json()["attachments"] == [{"name": "bail.pdf"}]
        assert created.json()["is_read"] is False

        listed = client.get(f"/v1/projects/{project.id}/messages", headers=headers).json()
        assert [m["content"] for m in listed] == ["Bonjour", "Salut"]
        assert listed[1]["sender"]["id"] == colleague.id

    def test_blank_message(self, client, project, headers) -> None:
        response = client.post(
            f"/v1/projects/{project.id}/messages", json={"content": " "}, headers=headers
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "message_required"

    def test_stranger_cannot_post(self, client, db_session, project) -> None:
        stranger = make_user(db_session, "intrus@cabinet.fr", name="Intrus")

        response = client.post(
            f"/v1/projects/{project.id}/messages",
            json={"content": "Hello"},
            headers=auth_headers(stranger),
        )

        assert response.status_code == 403


class TestPagination:
    def test_pages_walk_backwards_in_ascending_order(
        self, client, db_session, user, project, headers
    ) -> None:
        seed_messages(db_session, project, user, 5)

        first = client.get(
            "/v1/chat/messages", params={"project_id": project.id, "limit": 2}, headers=headers
        ).json()
        assert [m["content"] for m in first["messages"]] == ["message 3", "message 4"]
        assert first["has_more"] is True

        second = client.get(
            "/v1/chat/messages",
            params={"project_id": project.id, "limit": 2, "before": first["next_before"]},
            headers=headers,
        ).json()
        assert [m["content"] for m in second["messages"]] == ["message 1", "message 2"]

        third = client.get(
            "/v1/chat/messages",
            params={"project_id": project.id, "limit": 2, "before": second["next_before"]},
            headers=headers,
        ).json()
        assert [m["content"] for m in third["messages"]] == ["message 0"]
        assert third["has_more"] is False
        assert third["next_before"] is None

    def test_unknown_cursor(self, client, project, headers) -> None:
        response = client.get(
            "/v1/chat/messages", params={"project_id": project.id, "before": "nope"}, headers=headers
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_cursor"

    def test_project_id_is_required(self, client, headers) -> None:
        assert client.get("/v1/chat/messages", headers=headers).status_code == 422

    def test_limit_is_bounded(self, client, project, headers) -> None:
        response = client.get(
            "/v1/chat/messages", params={"project_id": project.id, "limit": 500}, headers=headers
        )

        assert response.status_code == 422


class TestReadReceipts:
    def test_mark_single_message(self, client, db_session, user, project, colleague) -> None:
        (message,) = seed_messages(db_session, project, user, 1)
        colleague_headers = auth_headers(colleague)

        first = client.post("/v1/chat/read", json={"message_id": message.id}, headers=colleague_headers)
        again = client.post("/v1/chat/read", json={"message_id": message.id}, headers=colleague_headers)

        assert first.json() == {"updated_count": 1}
        assert again.json() == {"updated_count": 0}
        db_session.refresh(message)
        assert message.is_read is True
        assert message.read_at is not None

    def test_own_message_is_not_marked(self, client, db_session, user, project, headers) -> None:
        (message,) = seed_messages(db_session, project, user, 1)

        response = client.post("/v1/chat/read", json={"message_id": message.id}, headers=headers)

        assert response.json() == {"updated_count": 0}

    def test_mark_whole_project(self, client, db_session, user, project, headers, colleague) -> None:
        seed_messages(db_session, project, colleague, 3)
        seed_messages(db_session, project, user, 2)

        response = client.post("/v1/chat/read", json={"project_id": project.id}, headers=headers)

        assert response.json() == {"updated_count": 3}
        assert client.post(
            "/v1/chat/read", json={"project_id": project.id}, headers=headers
        ).json() == {"updated_count": 0}

    def test_unknown_message(self, client, headers) -> None:
        response = client.post("/v1/chat/read", json={"message_id": "nope"}, headers=headers)

        assert response.status_code == 404

    def test_target_is_required(self, client, headers) -> None:
        response = client.post("/v1/chat/read", json={}, headers=headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "missing_target"
