"""
On-demand processing of one uploaded file:
download → extract → summarize → chunk → embed → replace chunks.
"""
import time
import uuid
from typing import Dict, List, Optional

from caselens.exceptions import FileRecordNotFoundError
from caselens.ingestion.blob_storage import BlobStorage
from caselens.ingestion.chunker import HierarchicalChunker
from caselens.ingestion.embedder import BatchEmbedder
from caselens.ingestion.extractor import Extractor
from caselens.ingestion.file_repository import FileRepository
from caselens.ingestion.storage import ChunkStore
from caselens.ingestion.summarizer import NO_TEXT_SUMMARY, SUMMARY_UNAVAILABLE, Summarizer
from caselens.logging_config import get_logger, log_context
from caselens.models.file_record import FileRecord
from caselens.observability import track, Phase
from caselens.schemas.chunks import ExtractedDocument, TranscriptSegment
from caselens.schemas.processing import ProcessingResult, ProcessingStatus

log = get_logger(__name__)


def cap_document(document: ExtractedDocument, max_chars: int) -> ExtractedDocument:
    """
    Trim extracted content to what gets stored, before chunking, so chunk
    offsets index into the stored text. Transcripts drop whole trailing
    segments instead of cutting one.
    """
    if len(document.text) <= max_chars:
        return document

    if document.segments:
        kept: List[TranscriptSegment] = []
        length = 0
        for segment in document.segments:
            added = len(segment.text) + (1 if kept else 0)
            if length + added > max_chars:
                break
            kept.append(segment)
            length += added
        return document.model_copy(update={
            "text": "\n".join(s.text for s in kept),
            "segments": kept,
        })

    return document.model_copy(update={
        "text": document.text[:max_chars],
        "page_breaks": [b for b in document.page_breaks if b < max_chars],
    })


class DocumentProcessor:
    """Runs the ingestion steps for a file and records the outcome on its row."""

    def __init__(
        self,
        files: FileRepository,
        storage: BlobStorage,
        extractor: Extractor,
        summarizer: Summarizer,
        chunker: HierarchicalChunker,
        embedder: BatchEmbedder,
        chunk_store: ChunkStore,
        max_extracted_chars: int = 50_000,
    ):
        self.files = files
        self.storage = storage
        self.extractor = extractor
        self.summarizer = summarizer
        self.chunker = chunker
        self.embedder = embedder
        self.chunk_store = chunk_store
        self.max_extracted_chars = max_extracted_chars

    @track(name="process_file", phase=Phase.INGESTION)
    async def process(self, file_id: uuid.UUID, project_id: uuid.UUID) -> ProcessingResult:
        """
        Process (or reprocess) one file.

        Never raises for processing problems: the file is marked failed and
        the failure is returned. A file outside the project is left untouched.
        """
        with log_context(file_id=str(file_id), project_id=str(project_id)):
            start_time = time.perf_counter()
            try:
                file = await self.files.get_file(file_id, project_id)
            except FileRecordNotFoundError as e:
                log.warning("file_not_in_project")
                return ProcessingResult(status=ProcessingStatus.FAILED, error=str(e))
            except Exception as e:
                error = str(e) or type(e).__name__
                log.error("file_load_failed", error=error, error_type=type(e).__name__)
                return ProcessingResult(status=ProcessingStatus.FAILED, error=error)

            try:
                result = await self._run(file, project_id)
            except Exception as e:
                error = str(e) or type(e).__name__
                log.error("file_processing_failed", error=error, error_type=type(e).__name__)
                try:
                    await self.files.mark_failed(file_id, project_id, error)
                except Exception as mark_error:
                    log.error("file_mark_failed_error", error=str(mark_error))
                return ProcessingResult(status=ProcessingStatus.FAILED, error=error)

            log.info(
                "file_processing_completed",
                chunks_created=result.chunks_created,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            return result

    async def _run(self, file: FileRecord, project_id: uuid.UUID) -> ProcessingResult:
        file_id = file.id
        await self.files.mark_processing(file_id, project_id)

        blob = await self.storage.download(file.file_path)
        document = await self.extractor.extract_document(blob, file.file_type, file.name, file.mime_type)
        document = cap_document(document, self.max_extracted_chars)

        if not document.text.strip():
            log.info("no_text_extracted", method=document.method)
            await self.files.mark_completed(
                file_id, project_id, summary=NO_TEXT_SUMMARY, extracted_text="", chunk_count=0
            )
            return ProcessingResult(status=ProcessingStatus.COMPLETED, chunks_created=0, summary=NO_TEXT_SUMMARY)

        summary = await self._summarize(document.text, file.name)

        if document.segments:
            drafts = self.chunker.chunk_transcript(document.segments)
        else:
            drafts = self.chunker.chunk(document.text, document.page_breaks)

        batch = await self.embedder.embed_batch([d.content for d in drafts])
        embeddings: Dict[str, Optional[List[float]]] = {
            draft.key: None if batch.is_zero(i) else batch.vectors[i]
            for i, draft in enumerate(drafts)
        }
        if batch.failed_indices:
            log.warning("chunks_stored_without_embedding", count=len(batch.failed_indices))

        replaced = await self.chunk_store.replace_chunks(
            file_id,
            source_file_name=file.name,
            source_file_type=document.file_type,
            drafts=drafts,
            embeddings=embeddings,
        )

        await self.files.mark_completed(
            file_id,
            project_id,
            summary=summary,
            extracted_text=document.text,
            chunk_count=replaced.total,
        )
        return ProcessingResult(status=ProcessingStatus.COMPLETED, chunks_created=replaced.total, summary=summary)

    async def _summarize(self, text: str, file_name: str) -> str:
        try:
            return await self.summarizer.summarize(text, file_name)
        except Exception as e:
            log.warning("summary_failed", error=str(e))
            return SUMMARY_UNAVAILABLE
