"""MCP tool tests against a stubbed service container."""
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from caselens.exceptions import GenerationError, GenerationErrorCategory, RetrievalError
from caselens.mcp.server import CaseTools, create_mcp_server
from caselens.schemas.chat import AnswerResult, EffortLevel, ModelChoice, QueryComplexity
from caselens.schemas.chunks import ChunkType
from caselens.schemas.retrieval import SearchResult

PROJECT_ID = uuid.uuid4()


def _hit(content):
    return SearchResult(
        chunk_id=uuid.uuid4(),
        file_id=uuid.uuid4(),
        content=content,
        chunk_type=ChunkType.CHILD,
        chunk_index=1,
        page_number=2,
        source_file_name="contract.pdf",
        source_file_type="pdf",
        rrf_score=0.03,
    )


@pytest.fixture
def services():
    services = MagicMock()
    services.search.search_documents = AsyncMock(return_value=[
        _hit("Notice period is eight weeks."),
        _hit("Signed in 2015."),
    ])
    services.router.answer = AsyncMock(return_value=AnswerResult(
        response="Eight weeks [Source 1].",
        model="gemini-2.5-flash",
        model_choice=ModelChoice.FAST,
        complexity=QueryComplexity.SIMPLE,
        effort_level=EffortLevel.STANDARD,
        citations=[1],
    ))
    services.router.suggest_follow_ups = AsyncMock(return_value=["When was it signed?"])
    return services


@pytest.fixture
def tools(services):
    return CaseTools(services)


def test_server_is_built_from_given_services(services):
    server = create_mcp_server(services)
    assert server.name == "caselens"


class TestSearchTool:

    @pytest.mark.asyncio
    async def test_search(self, tools, services):
        result = await tools.search_documents("notice", str(PROJECT_ID), file_type="pdf", limit=500)

        assert [r["content"] for r in result["results"]] == ["Notice period is eight weeks.", "Signed in 2015."]
        kwargs = services.search.search_documents.await_args.kwargs
        assert kwargs["project_id"] == PROJECT_ID
        assert kwargs["limit"] == 100

    @pytest.mark.asyncio
    async def test_invalid_project_id(self, tools, services):
        result = await tools.search_documents("notice", "not-a-uuid")

        assert result["error"] is True
        assert result["error_type"] == "ValueError"
        services.search.search_documents.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retrieval_failure(self, tools, services):
        services.search.search_documents.side_effect = RetrievalError("db down")
        result = await tools.search_documents("notice", str(PROJECT_ID))
        assert result["error_type"] == "RetrievalError"


class TestAskTool:

    @pytest.mark.asyncio
    async def test_answer_with_cited_sources_and_follow_ups(self, tools, services):
        result = await tools.ask_case("What is the notice period?", str(PROJECT_ID), effort_level="thorough")

        assert result["answer"] == "Eight weeks [Source 1]."
        assert [s["source_index"] for s in result["sources"]] == [1]
        assert result["follow_ups"] == ["When was it signed?"]
        assert services.search.search_documents.await_args.kwargs["limit"] == 12
        assert services.router.answer.await_args.kwargs["conversation_history"] == []

    @pytest.mark.asyncio
    async def test_search_failure_still_answers(self, tools, services):
        services.search.search_documents.side_effect = RetrievalError("db down")

        result = await tools.ask_case("What is the notice period?", str(PROJECT_ID))

        assert result["answer"] == "Eight weeks [Source 1]."
        assert result["sources"] == []
        assert services.router.answer.await_args.kwargs["sources"] is None

    @pytest.mark.asyncio
    async def test_generation_error_returns_user_message(self, tools, services):
        services.router.answer.side_effect = GenerationError(
            "raw", category=GenerationErrorCategory.AUTHENTICATION, user_message="Check the API key."
        )

        result = await tools.ask_case("Question", str(PROJECT_ID))

        assert result == {"error": True, "error_type": "GenerationError", "message": "Check the API key."}

    @pytest.mark.asyncio
    async def test_invalid_effort_level(self, tools, services):
        result = await tools.ask_case("Question", str(PROJECT_ID), effort_level="extreme")

        assert result["error_type"] == "ValueError"
        services.router.answer.assert_not_awaited()
