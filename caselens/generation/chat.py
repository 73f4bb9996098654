"""Project-scoped conversations: persist turns, retrieve context, route answers."""
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import delete, select

from caselens.db.db_manager import DatabaseManager
from caselens.exceptions import ConversationBusyError, EmptyMessageError, GenerationError, RetrievalException, EmbeddingError
from caselens.generation.router import EFFORT_CONFIG, AnswerRouter
from caselens.ingestion.blob_storage import BlobStorage
from caselens.logging_config import get_logger, log_context
from caselens.models.chat_message import ChatMessage
from caselens.observability import track, Phase
from caselens.retrieval.retriever import DocumentSearch, format_search_context, results_to_sources
from caselens.schemas.chat import (
    ChatMessageRead,
    ConversationTurn,
    EffortLevel,
    Role,
    chat_sources_adapter,
)
from caselens.schemas.files import FileContext, FileType, detect_file_type

log = get_logger(__name__)

MAX_FILE_CONTEXT_CHARS = 30_000


class ChatService:
    """
    One conversation per project.

    A conversation answers one message at a time: a second send while an
    answer is in flight raises ConversationBusyError. Clearing the
    conversation abandons the in-flight answer, which is then dropped
    instead of persisted.
    """

    def __init__(
        self,
        db: DatabaseManager,
        search: DocumentSearch,
        router: AnswerRouter,
        storage: BlobStorage,
        history_limit: int = 20,
    ):
        self.db = db
        self.search = search
        self.router = router
        self.storage = storage
        self.history_limit = history_limit
        self._in_flight: Dict[uuid.UUID, object] = {}
        self._epochs: Dict[uuid.UUID, int] = {}

    def is_busy(self, project_id: uuid.UUID) -> bool:
        return project_id in self._in_flight

    def _abandoned(self, project_id: uuid.UUID, epoch: int) -> bool:
        return self._epochs.get(project_id, 0) != epoch

    @track(name="send_message", phase=Phase.QUERY)
    async def send_message(
        self,
        project_id: uuid.UUID,
        content: str,
        file_context: Optional[FileContext] = None,
        effort_level: EffortLevel = EffortLevel.STANDARD,
    ) -> Optional[ChatMessageRead]:
        """
        Answer a user message and persist both turns.

        Returns the assistant message, or None when the conversation was
        cleared while the answer was being generated.

        Raises:
            EmptyMessageError: If the message is blank
            ConversationBusyError: If an answer is already in flight
        """
        question = content.strip() if content else ""
        if not question:
            raise EmptyMessageError("Message content is empty")
        if self.is_busy(project_id):
            raise ConversationBusyError(f"Conversation {project_id} already has an answer in flight")

        token = object()
        self._in_flight[project_id] = token
        epoch = self._epochs.get(project_id, 0)
        try:
            with log_context(project_id=str(project_id)):
                return await self._answer(project_id, question, file_context, effort_level, epoch)
        finally:
            if self._in_flight.get(project_id) is token:
                del self._in_flight[project_id]

    async def _answer(
        self,
        project_id: uuid.UUID,
        question: str,
        file_context: Optional[FileContext],
        effort_level: EffortLevel,
        epoch: int,
    ) -> Optional[ChatMessageRead]:
        history = await self._history(project_id)

        file_label = None
        context_parts: List[str] = []
        if file_context:
            file_label = f'File: "{file_context.name}" (type: {file_context.type or "unknown"})'
            file_content = await self._file_content(file_context)
            context_parts.append(f"{file_label}\n\n--- FILE CONTENT ---\n{file_content}\n--- END FILE CONTENT ---")

        await self._insert(project_id, role=Role.USER, content=question, file_context=file_label)

        sources = []
        try:
            results = await self.search.search_documents(
                question,
                project_id=project_id,
                limit=EFFORT_CONFIG[effort_level].chunk_limit,
            )
            if results:
                context_parts.append(format_search_context(results))
                sources = results_to_sources(results)
        except (RetrievalException, EmbeddingError) as e:
            log.warning("chat_search_failed", error=str(e))

        try:
            result = await self.router.answer(
                question,
                conversation_history=history,
                case_context="\n".join(context_parts) or None,
                effort_level=effort_level,
                sources=sources or None,
            )
        except GenerationError as e:
            if self._abandoned(project_id, epoch):
                log.info("chat_answer_abandoned", outcome="error")
                return None
            log.warning("chat_answer_failed", category=e.category)
            return await self._insert(
                project_id,
                role=Role.ASSISTANT,
                content=e.user_message,
                effort_level=effort_level.value,
            )

        if self._abandoned(project_id, epoch):
            log.info("chat_answer_abandoned", outcome="answer")
            return None

        return await self._insert(
            project_id,
            role=Role.ASSISTANT,
            content=result.response,
            model=result.model,
            sources=chat_sources_adapter.dump_python(sources, mode="json") if sources else None,
            complexity=result.complexity.value,
            effort_level=result.effort_level.value,
        )

    async def _history(self, project_id: uuid.UUID) -> List[ConversationTurn]:
        messages = await self.list_messages(project_id)
        return [ConversationTurn(role=m.role, content=m.content) for m in messages[-self.history_limit:]]

    async def _file_content(self, file_context: FileContext) -> str:
        file_type = detect_file_type(file_context.name, declared_type=file_context.type)
        if file_type != FileType.TEXT:
            return (
                f'[File: "{file_context.name}" (type: {file_context.type or file_type.value}): '
                "binary file, content not extractable as text]"
            )
        try:
            data = await self.storage.download(file_context.path)
        except Exception as e:
            log.warning("chat_file_context_unavailable", file_name=file_context.name, error=str(e))
            return f'[Could not read file "{file_context.name}": {e}]'

        text = data.decode("utf-8", errors="replace")
        if len(text) > MAX_FILE_CONTEXT_CHARS:
            return text[:MAX_FILE_CONTEXT_CHARS] + "\n\n[Content truncated at 30,000 characters]"
        return text

    async def _insert(self, project_id: uuid.UUID, role: Role, content: str, **values) -> ChatMessageRead:
        async with self.db.get_session() as session:
            message = ChatMessage(
                id=uuid.uuid4(),
                project_id=project_id,
                role=role.value,
                content=content,
                created_at=datetime.utcnow(),
                **values,
            )
            session.add(message)
            await session.flush()
            return ChatMessageRead.model_validate(message)

    async def list_messages(self, project_id: uuid.UUID) -> List[ChatMessageRead]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(ChatMessage)
                .where(ChatMessage.project_id == project_id)
                .order_by(ChatMessage.created_at, ChatMessage.id)
            )
            return [ChatMessageRead.model_validate(m) for m in result.scalars().all()]

    async def clear_conversation(self, project_id: uuid.UUID) -> int:
        """Delete every message and abandon any answer still in flight."""
        self._epochs[project_id] = self._epochs.get(project_id, 0) + 1
        self._in_flight.pop(project_id, None)

        async with self.db.get_session() as session:
            result = await session.execute(delete(ChatMessage).where(ChatMessage.project_id == project_id))
        deleted = result.rowcount or 0
        log.info("conversation_cleared", project_id=str(project_id), deleted=deleted)
        return deleted
