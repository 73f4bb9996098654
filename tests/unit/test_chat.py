import asyncio
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from caselens.exceptions import (
    ConversationBusyError,
    EmptyMessageError,
    GenerationError,
    GenerationErrorCategory,
    RetrievalError,
)
from caselens.generation.chat import ChatService
from caselens.generation.router import USER_MESSAGES
from caselens.models.chat_message import ChatMessage
from caselens.schemas.chat import AnswerResult, EffortLevel, ModelChoice, QueryComplexity, Role
from caselens.schemas.chunks import ChunkType
from caselens.schemas.files import FileContext
from caselens.schemas.retrieval import SearchResult


def _answer(text="The notice period is 8 weeks [Source 1]."):
    return AnswerResult(
        response=text,
        model="gemini-2.5-flash",
        model_choice=ModelChoice.FAST,
        complexity=QueryComplexity.SIMPLE,
        effort_level=EffortLevel.STANDARD,
        citations=[1],
    )


def _search_result():
    return SearchResult(
        chunk_id=uuid.uuid4(),
        file_id=uuid.uuid4(),
        content="Notice: eight weeks.",
        chunk_type=ChunkType.CHILD,
        chunk_index=1,
        page_number=2,
        source_file_name="contract.pdf",
        source_file_type="pdf",
        rrf_score=0.03,
    )


@pytest.fixture
def empty_history(mock_session):
    result = MagicMock()
    result.scalars.return_value.all.return_value = []
    result.rowcount = 0
    mock_session.execute.return_value = result
    return result


@pytest.fixture
def search():
    search = MagicMock()
    search.search_documents = AsyncMock(return_value=[_search_result()])
    return search


@pytest.fixture
def router():
    router = MagicMock()
    router.answer = AsyncMock(return_value=_answer())
    return router


@pytest.fixture
def storage():
    storage = MagicMock()
    storage.download = AsyncMock(return_value=b"Employee handbook text.")
    return storage


@pytest.fixture
def chat(mock_db, search, router, storage, empty_history):
    return ChatService(mock_db, search, router, storage)


def _added(mock_session):
    return [call.args[0] for call in mock_session.add.call_args_list]


class TestSendMessage:

    @pytest.mark.asyncio
    async def test_persists_both_turns_with_sources(self, chat, router, search, mock_session):
        project_id = uuid.uuid4()

        message = await chat.send_message(project_id, "  What is the notice period?  ", effort_level=EffortLevel.THOROUGH)

        assert message.role == Role.ASSISTANT
        assert message.content.startswith("The notice period")
        assert message.model == "gemini-2.5-flash"
        assert message.sources[0].source_index == 1
        assert message.sources[0].file_name == "contract.pdf"

        user, assistant = _added(mock_session)
        assert isinstance(user, ChatMessage)
        assert user.role == "user"
        assert user.content == "What is the notice period?"
        assert assistant.role == "assistant"

        assert search.search_documents.await_args.kwargs["limit"] == 12
        kwargs = router.answer.await_args.kwargs
        assert "[Source 1: contract.pdf, page 2]" in kwargs["case_context"]
        assert kwargs["effort_level"] == EffortLevel.THOROUGH
        assert len(kwargs["sources"]) == 1

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, chat, mock_session):
        with pytest.raises(EmptyMessageError):
            await chat.send_message(uuid.uuid4(), "   ")
        mock_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_busy_conversation_rejects_second_message(self, chat, router):
        project_id = uuid.uuid4()
        release = asyncio.Event()

        async def slow_answer(*args, **kwargs):
            await release.wait()
            return _answer()

        router.answer.side_effect = slow_answer
        first = asyncio.create_task(chat.send_message(project_id, "First question"))
        await asyncio.sleep(0)
        assert chat.is_busy(project_id)

        with pytest.raises(ConversationBusyError):
            await chat.send_message(project_id, "Second question")

        # Other projects are unaffected
        router.answer.side_effect = None
        assert await chat.send_message(uuid.uuid4(), "Elsewhere") is not None

        release.set()
        assert await first is not None
        assert not chat.is_busy(project_id)

    @pytest.mark.asyncio
    async def test_generation_error_persisted_as_assistant_message(self, chat, router, mock_session):
        router.answer.side_effect = GenerationError(
            "401 invalid api key",
            category=GenerationErrorCategory.AUTHENTICATION,
            user_message=USER_MESSAGES[GenerationErrorCategory.AUTHENTICATION],
        )

        message = await chat.send_message(uuid.uuid4(), "Question?")

        assert message.role == Role.ASSISTANT
        assert message.content == USER_MESSAGES[GenerationErrorCategory.AUTHENTICATION]
        assert message.model is None
        assert len(_added(mock_session)) == 2

    @pytest.mark.asyncio
    async def test_search_failure_still_answers(self, chat, search, router):
        search.search_documents.side_effect = RetrievalError("db down")

        message = await chat.send_message(uuid.uuid4(), "Question?")

        assert message.content.startswith("The notice period")
        assert message.sources is None
        assert router.answer.await_args.kwargs["case_context"] is None
        assert router.answer.await_args.kwargs["sources"] is None

    @pytest.mark.asyncio
    async def test_clear_abandons_in_flight_answer(self, chat, router, mock_session):
        project_id = uuid.uuid4()

        async def answer_then_cleared(*args, **kwargs):
            await chat.clear_conversation(project_id)
            return _answer()

        router.answer.side_effect = answer_then_cleared

        assert await chat.send_message(project_id, "Question?") is None
        # Only the user turn was written before the clear
        assert [m.role for m in _added(mock_session)] == ["user"]
        assert not chat.is_busy(project_id)

    @pytest.mark.asyncio
    async def test_text_file_context_is_inlined(self, chat, router, storage, mock_session):
        file_context = FileContext(name="notes.txt", path="p/notes.txt", type="text")

        await chat.send_message(uuid.uuid4(), "Summarize my notes", file_context=file_context)

        storage.download.assert_awaited_once_with("p/notes.txt")
        context = router.answer.await_args.kwargs["case_context"]
        assert "--- FILE CONTENT ---\nEmployee handbook text.\n--- END FILE CONTENT ---" in context
        assert _added(mock_session)[0].file_context == 'File: "notes.txt" (type: text)'

    @pytest.mark.asyncio
    async def test_binary_file_context_is_placeholder(self, chat, router, storage):
        file_context = FileContext(name="scan.pdf", path="p/scan.pdf", type="pdf")

        await chat.send_message(uuid.uuid4(), "What is in the scan?", file_context=file_context)

        storage.download.assert_not_awaited()
        assert "content not extractable as text" in router.answer.await_args.kwargs["case_context"]

    @pytest.mark.asyncio
    async def test_long_file_context_is_truncated(self, chat, router, storage):
        storage.download.return_value = b"a" * 40_000
        file_context = FileContext(name="long.txt", path="p/long.txt")

        await chat.send_message(uuid.uuid4(), "Read this", file_context=file_context)

        context = router.answer.await_args.kwargs["case_context"]
        assert "a" * 30_000 + "\n\n[Content truncated at 30,000 characters]" in context
        assert "a" * 30_001 not in context


class TestHistory:

    @pytest.mark.asyncio
    async def test_history_is_passed_to_router(self, chat, router, empty_history):
        project_id = uuid.uuid4()
        previous = [
            ChatMessage(id=uuid.uuid4(), project_id=project_id, role="user", content="Who is the employer?"),
            ChatMessage(id=uuid.uuid4(), project_id=project_id, role="assistant", content="Acme Corp."),
        ]
        empty_history.scalars.return_value.all.return_value = previous

        await chat.send_message(project_id, "And the employee?")

        history = router.answer.await_args.kwargs["conversation_history"]
        assert [(t.role, t.content) for t in history] == [
            (Role.USER, "Who is the employer?"),
            (Role.ASSISTANT, "Acme Corp."),
        ]

    @pytest.mark.asyncio
    async def test_clear_conversation_returns_deleted_count(self, chat, empty_history):
        empty_history.rowcount = 4
        assert await chat.clear_conversation(uuid.uuid4()) == 4
