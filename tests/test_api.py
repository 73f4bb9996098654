"""API tests against a stubbed service container."""
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from caselens.access import OpenAccessPolicy, StaticAccessPolicy
from caselens.api.main import create_app
from caselens.exceptions import (
    ConversationBusyError,
    GenerationError,
    GenerationErrorCategory,
    QueryPreprocessingError,
)
from caselens.schemas.chat import ChatMessageRead, Role
from caselens.schemas.processing import ProcessingResult, ProcessingStatus

PROJECT_ID = uuid.uuid4()


@pytest.fixture
def services(mock_db):
    services = MagicMock()
    services.db = mock_db
    services.access = OpenAccessPolicy()
    services.chat.send_message = AsyncMock()
    services.chat.list_messages = AsyncMock(return_value=[])
    services.chat.clear_conversation = AsyncMock(return_value=3)
    services.search.search_documents = AsyncMock(return_value=[])
    services.processor.process = AsyncMock(
        return_value=ProcessingResult(status=ProcessingStatus.COMPLETED, chunks_created=4, summary="A contract.")
    )
    return services


@pytest.fixture
def client(services):
    with TestClient(create_app(services=services)) as client:
        yield client


def _assistant_message(content="Eight weeks [Source 1]."):
    return ChatMessageRead(id=uuid.uuid4(), project_id=PROJECT_ID, role=Role.ASSISTANT, content=content)


class TestChatEndpoints:

    def test_send_message(self, client, services):
        services.chat.send_message.return_value = _assistant_message()

        response = client.post(
            f"/projects/{PROJECT_ID}/chat",
            json={"content": "What is the notice period?", "effort_level": "thorough"},
        )

        assert response.status_code == 200
        assert response.json()["content"] == "Eight weeks [Source 1]."
        args, kwargs = services.chat.send_message.await_args
        assert args == (PROJECT_ID, "What is the notice period?")
        assert kwargs["effort_level"].value == "thorough"

    def test_abandoned_answer_returns_no_content(self, client, services):
        services.chat.send_message.return_value = None
        response = client.post(f"/projects/{PROJECT_ID}/chat", json={"content": "Question"})
        assert response.status_code == 204

    def test_busy_conversation_conflict(self, client, services):
        services.chat.send_message.side_effect = ConversationBusyError("busy")
        response = client.post(f"/projects/{PROJECT_ID}/chat", json={"content": "Question"})
        assert response.status_code == 409

    def test_generation_error_uses_user_message(self, client, services):
        services.chat.send_message.side_effect = GenerationError(
            "raw provider text", category=GenerationErrorCategory.RATE_LIMIT, user_message="Rate limit reached."
        )
        response = client.post(f"/projects/{PROJECT_ID}/chat", json={"content": "Question"})

        assert response.status_code == 429
        assert response.json()["detail"] == "Rate limit reached."
        assert "raw provider text" not in response.text

    def test_empty_content_rejected(self, client):
        response = client.post(f"/projects/{PROJECT_ID}/chat", json={"content": ""})
        assert response.status_code == 422

    def test_list_and_clear(self, client, services):
        services.chat.list_messages.return_value = [_assistant_message()]

        assert len(client.get(f"/projects/{PROJECT_ID}/chat").json()) == 1
        assert client.delete(f"/projects/{PROJECT_ID}/chat").status_code == 204
        services.chat.clear_conversation.assert_awaited_once_with(PROJECT_ID)


class TestSearchEndpoint:

    def test_search(self, client, services):
        response = client.post("/search", json={"query": "notice", "project_id": str(PROJECT_ID), "match_count": 3})

        assert response.status_code == 200
        assert response.json() == {"query": "notice", "results": []}
        assert services.search.search_documents.await_args.kwargs["limit"] == 3

    def test_overrides_are_passed_through(self, client, services):
        response = client.post(
            "/search",
            json={"query": "notice", "project_id": str(PROJECT_ID), "semantic_weight": 0, "rrf_k": 10},
        )

        assert response.status_code == 200
        kwargs = services.search.search_documents.await_args.kwargs
        assert kwargs["semantic_weight"] == 0
        assert kwargs["rrf_k"] == 10

    @pytest.mark.parametrize("body", [
        {"full_text_weight": 0, "semantic_weight": 0},
        {"rrf_k": 0},
    ])
    def test_invalid_fusion_parameters_rejected(self, client, services, body):
        response = client.post("/search", json={"query": "notice", "project_id": str(PROJECT_ID), **body})

        assert response.status_code == 422
        services.search.search_documents.assert_not_awaited()

    def test_bad_query(self, client, services):
        services.search.search_documents.side_effect = QueryPreprocessingError("bad")
        response = client.post("/search", json={"query": "x", "project_id": str(PROJECT_ID)})
        assert response.status_code == 400


class TestProcessEndpoint:

    def test_process_file(self, client, services):
        file_id = uuid.uuid4()
        response = client.post(f"/files/{file_id}/process", json={"project_id": str(PROJECT_ID)})

        assert response.status_code == 200
        assert response.json()["chunks_created"] == 4
        services.processor.process.assert_awaited_once_with(file_id, PROJECT_ID)


class TestAccess:

    @pytest.fixture
    def restricted(self, services):
        services.access = StaticAccessPolicy({"alice": [PROJECT_ID]})
        return services

    def test_member_allowed(self, client, restricted):
        response = client.get(f"/projects/{PROJECT_ID}/chat", headers={"X-User-Id": "alice"})
        assert response.status_code == 200

    def test_non_member_forbidden(self, client, restricted):
        assert client.get(f"/projects/{PROJECT_ID}/chat", headers={"X-User-Id": "bob"}).status_code == 403
        assert client.get(f"/projects/{PROJECT_ID}/chat").status_code == 403

        response = client.post(
            "/search", json={"query": "notice", "project_id": str(PROJECT_ID)}, headers={"X-User-Id": "bob"}
        )
        assert response.status_code == 403
        restricted.search.search_documents.assert_not_awaited()

        response = client.post(f"/files/{uuid.uuid4()}/process", json={"project_id": str(PROJECT_ID)})
        assert response.status_code == 403
        restricted.processor.process.assert_not_awaited()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["checks"]["database"] == "healthy"
