"""
Service container.

Builds every client and component once, from Settings, and wires them
together through constructors. The API lifespan and the MCP server both
start from `build_services`.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from caselens.access import OpenAccessPolicy, ProjectAccessPolicy
from caselens.config import LLMProvider, Settings
from caselens.db.db_manager import DatabaseManager
from caselens.generation.chat import ChatService
from caselens.generation.llm_factory import ModelRegistry, build_chat_model
from caselens.generation.router import AnswerRouter
from caselens.ingestion.blob_storage import BlobStorage, LocalBlobStorage
from caselens.ingestion.chunker import HierarchicalChunker
from caselens.ingestion.embedder import BatchEmbedder, build_embeddings
from caselens.ingestion.extractor import Extractor, VisionOcr, WhisperTranscriber
from caselens.ingestion.file_repository import FileRepository
from caselens.ingestion.pipeline import DocumentProcessor
from caselens.ingestion.storage import ChunkStore
from caselens.ingestion.summarizer import Summarizer
from caselens.logging_config import get_logger
from caselens.retrieval.hybrid_search import HybridRetriever
from caselens.retrieval.retriever import DocumentSearch

log = get_logger(__name__)


@dataclass
class Services:
    settings: Settings
    db: DatabaseManager
    storage: BlobStorage
    embedder: BatchEmbedder
    chunk_store: ChunkStore
    processor: DocumentProcessor
    search: DocumentSearch
    router: AnswerRouter
    chat: ChatService
    access: ProjectAccessPolicy

    async def close(self) -> None:
        await self.db.dispose()


def _build_extractor(settings: Settings) -> Extractor:
    timeout = settings.timeout.extraction_seconds
    openai_key = settings.llm.openai_api_key

    ocr: Optional[VisionOcr] = None
    if openai_key:
        vision_llm = build_chat_model(
            LLMProvider.OPENAI, settings.llm.vision_model, openai_key, timeout, max_tokens=4000
        )
        ocr = VisionOcr(vision_llm, timeout=timeout)
    else:
        log.warning("ocr_not_configured", reason="LLM__OPENAI_API_KEY not set")

    transcriber = None
    transcription_key = settings.transcription.api_key or openai_key
    if transcription_key:
        from openai import AsyncOpenAI
        transcriber = WhisperTranscriber(
            AsyncOpenAI(api_key=transcription_key, max_retries=2),
            model=settings.transcription.model,
            timeout=timeout,
        )
    else:
        log.warning("transcription_not_configured", reason="TRANSCRIPTION__API_KEY not set")

    return Extractor(
        ocr=ocr,
        transcriber=transcriber,
        max_ocr_pages=settings.ingestion.max_ocr_pages,
        timeout=timeout,
    )


def build_services(
    settings: Settings,
    storage: Optional[BlobStorage] = None,
    access: Optional[ProjectAccessPolicy] = None,
) -> Services:
    """Construct the full object graph. Nothing here talks to the network."""
    db = DatabaseManager(settings)
    storage = storage or LocalBlobStorage(Path(settings.storage.root_path))

    embedder = BatchEmbedder(
        build_embeddings(settings),
        dimension=settings.embedding.dimension,
        batch_size=settings.embedding.batch_size,
        max_concurrency=settings.embedding.max_concurrency,
        max_attempts=settings.embedding.max_attempts,
        timeout=settings.timeout.embedding_seconds,
    )
    chunk_store = ChunkStore(db)

    summary_llm = None
    if settings.llm.openai_api_key:
        summary_llm = build_chat_model(
            LLMProvider.OPENAI,
            settings.llm.summary_model,
            settings.llm.openai_api_key,
            settings.timeout.llm_seconds,
            temperature=0.2,
            max_tokens=300,
        )

    processor = DocumentProcessor(
        files=FileRepository(db, max_extracted_chars=settings.ingestion.max_extracted_chars),
        storage=storage,
        extractor=_build_extractor(settings),
        summarizer=Summarizer(
            summary_llm,
            max_input_chars=settings.ingestion.summary_input_chars,
            timeout=settings.timeout.llm_seconds,
        ),
        chunker=HierarchicalChunker(
            parent_size=settings.chunking.parent_size,
            child_size=settings.chunking.child_size,
        ),
        embedder=embedder,
        chunk_store=chunk_store,
        max_extracted_chars=settings.ingestion.max_extracted_chars,
    )

    search = DocumentSearch(
        embedder,
        HybridRetriever(db, text_search_config=settings.retrieval.text_search_config),
        settings.retrieval,
    )
    router = AnswerRouter(
        ModelRegistry(settings),
        timeout=settings.timeout.llm_seconds,
        max_retry_wait=settings.llm.max_retry_wait_seconds,
        tracing=settings.opik.enabled,
    )
    chat = ChatService(db, search, router, storage)

    log.info("services_built", embedding_provider=settings.embedding.provider.value)
    return Services(
        settings=settings,
        db=db,
        storage=storage,
        embedder=embedder,
        chunk_store=chunk_store,
        processor=processor,
        search=search,
        router=router,
        chat=chat,
        access=access or OpenAccessPolicy(),
    )
