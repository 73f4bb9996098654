"""High-level retrieval orchestration."""
import uuid
from typing import List, Optional

from caselens.config import RetrievalSettings
from caselens.exceptions import EmbeddingError
from caselens.ingestion.embedder import BatchEmbedder
from caselens.logging_config import get_logger
from caselens.observability import track, Phase
from caselens.retrieval.hybrid_search import HybridRetriever
from caselens.retrieval.query_preprocessor import preprocess_query
from caselens.schemas.chat import FileChunkCitation
from caselens.schemas.files import FileType
from caselens.schemas.retrieval import SearchOptions, SearchResult

log = get_logger(__name__)

CONTEXT_CHARS_PER_SOURCE = 800
PREVIEW_CHARS = 200


class DocumentSearch:
    """Query-side facade: preprocess → embed → hybrid search."""

    def __init__(self, embedder: BatchEmbedder, hybrid: HybridRetriever, settings: RetrievalSettings):
        self.embedder = embedder
        self.hybrid = hybrid
        self.settings = settings

    @track(name="search_documents", phase=Phase.RETRIEVAL)
    async def search_documents(
        self,
        query: str,
        project_id: Optional[uuid.UUID] = None,
        file_type: Optional[FileType] = None,
        limit: Optional[int] = None,
        full_text_weight: Optional[float] = None,
        semantic_weight: Optional[float] = None,
        rrf_k: Optional[int] = None,
    ) -> List[SearchResult]:
        """
        Search processed chunks, optionally scoped to a project and file type.

        Weights and `rrf_k` fall back to the configured defaults when omitted.
        If the query cannot be embedded the search degrades to full-text only.

        Raises:
            QueryPreprocessingError: If the query cannot be normalized
            RetrievalError: If the database search fails
        """
        processed_query = preprocess_query(query)
        if not processed_query:
            return []

        options = SearchOptions(
            project_id=project_id,
            file_type=file_type,
            match_count=limit or self.settings.match_count,
            full_text_weight=self.settings.full_text_weight if full_text_weight is None else full_text_weight,
            semantic_weight=self.settings.semantic_weight if semantic_weight is None else semantic_weight,
            rrf_k=rrf_k or self.settings.rrf_k,
            candidate_multiplier=self.settings.candidate_multiplier,
        )

        embedding: Optional[List[float]] = None
        if options.semantic_weight > 0:
            try:
                embedding = await self.embedder.embed_query(processed_query)
            except EmbeddingError as e:
                log.warning("query_embedding_unavailable_text_only", error=str(e))

        results = await self.hybrid.search(processed_query, embedding, options)
        log.info(
            "search_documents_completed",
            query_length=len(processed_query),
            mode="hybrid" if embedding else "full_text",
            results_count=len(results),
        )
        return results


def format_search_context(results: List[SearchResult]) -> str:
    """
    Render results as a prompt block with numbered [Source N] markers.

    Numbering follows list order, so it matches `results_to_sources`.
    """
    if not results:
        return ""

    blocks = []
    for i, result in enumerate(results, start=1):
        parts = [f"[Source {i}: {result.source_file_name}"]
        if result.page_number:
            parts.append(f"page {result.page_number}")
        if result.section_heading:
            parts.append(f'section "{result.section_heading}"')
        header = ", ".join(parts) + "]"
        blocks.append(f"{header}\n{result.content[:CONTEXT_CHARS_PER_SOURCE]}")

    return "\n--- DOCUMENT SEARCH RESULTS ---\n" + "\n\n".join(blocks) + "\n--- END SEARCH RESULTS ---"


def results_to_sources(results: List[SearchResult]) -> List[FileChunkCitation]:
    """Citation records for the results, numbered like the prompt context."""
    return [
        FileChunkCitation(
            source_index=i,
            chunk_id=result.chunk_id,
            file_id=result.file_id,
            file_name=result.source_file_name,
            file_type=result.source_file_type,
            page_number=result.page_number,
            section_heading=result.section_heading,
            content_preview=result.content[:PREVIEW_CHARS],
            timestamp_start=result.timestamp_start,
        )
        for i, result in enumerate(results, start=1)
    ]
