"""Hybrid full-text + pgvector search fused with Reciprocal Rank Fusion."""
import time
from typing import Callable, Dict, Hashable, List, Optional, Sequence, Tuple

from sqlalchemy import text

from caselens.db.db_manager import DatabaseManager
from caselens.exceptions import RetrievalError
from caselens.logging_config import get_logger
from caselens.observability import track, Phase
from caselens.schemas.chunks import ChunkType
from caselens.schemas.retrieval import SearchOptions, SearchResult

log = get_logger(__name__)

CHUNK_COLUMNS = """
    dc.id AS chunk_id,
    dc.file_id,
    dc.content,
    dc.chunk_type,
    dc.chunk_index,
    dc.page_number,
    dc.section_heading,
    dc.source_file_name,
    dc.source_file_type,
    dc.timestamp_start
"""


def reciprocal_rank_fusion(
    full_text_ids: Sequence[Hashable],
    semantic_ids: Sequence[Hashable],
    full_text_weight: float = 1.0,
    semantic_weight: float = 1.0,
    rrf_k: int = 50,
    tie_key: Optional[Callable[[Hashable], tuple]] = None,
) -> List[Tuple[Hashable, float]]:
    """
    Fuse two best-first rankings into one.

    Each id scores sum(weight / (rrf_k + rank)) over the rankings it appears
    in, ranks starting at 1. An id missing from a ranking gets nothing from
    it. Equal scores are ordered by `tie_key` (default: the id as a string).

    Returns:
        (id, score) pairs, best first
    """
    scores: Dict[Hashable, float] = {}
    for ids, weight in ((full_text_ids, full_text_weight), (semantic_ids, semantic_weight)):
        seen = set()
        for rank, item in enumerate(ids, start=1):
            if item in seen:
                continue
            seen.add(item)
            scores[item] = scores.get(item, 0.0) + weight / (rrf_k + rank)

    key = tie_key or (lambda item: (str(item),))
    return sorted(scores.items(), key=lambda pair: (-pair[1], key(pair[0])))


class HybridRetriever:
    """Runs both rankings in Postgres and fuses them in Python."""

    def __init__(self, db: DatabaseManager, text_search_config: str = "english"):
        self.db = db
        self.text_search_config = text_search_config

    @staticmethod
    def _scope(options: SearchOptions, params: dict) -> str:
        clauses = ""
        if options.project_id is not None:
            clauses += " AND f.project_id = :project_id"
            params["project_id"] = options.project_id
        if options.file_type is not None:
            clauses += " AND dc.source_file_type = :file_type"
            params["file_type"] = options.file_type.value
        return clauses

    async def _full_text_rows(self, session, query_text: str, options: SearchOptions) -> list:
        params = {
            "config": self.text_search_config,
            "query": query_text,
            "limit": options.candidate_count,
        }
        sql = f"""
            SELECT {CHUNK_COLUMNS},
                ts_rank_cd(dc.fts, websearch_to_tsquery(CAST(:config AS regconfig), :query)) AS rank_score
            FROM document_chunks dc
            JOIN files f ON f.id = dc.file_id
            WHERE dc.fts @@ websearch_to_tsquery(CAST(:config AS regconfig), :query)
            {self._scope(options, params)}
            ORDER BY rank_score DESC, dc.chunk_index, dc.id
            LIMIT :limit
        """
        result = await session.execute(text(sql), params)
        return result.fetchall()

    async def _semantic_rows(self, session, query_embedding: List[float], options: SearchOptions) -> list:
        params = {
            "query_embedding": str(query_embedding),
            "limit": options.candidate_count,
        }
        sql = f"""
            SELECT {CHUNK_COLUMNS},
                dc.embedding <=> CAST(:query_embedding AS vector) AS distance
            FROM document_chunks dc
            JOIN files f ON f.id = dc.file_id
            WHERE dc.embedding IS NOT NULL
            {self._scope(options, params)}
            ORDER BY distance, dc.chunk_index, dc.id
            LIMIT :limit
        """
        result = await session.execute(text(sql), params)
        return result.fetchall()

    @track(name="hybrid_search", phase=Phase.RETRIEVAL)
    async def search(
        self,
        query_text: str,
        query_embedding: Optional[List[float]],
        options: SearchOptions,
    ) -> List[SearchResult]:
        """
        Find the best chunks for a query.

        With no embedding (or a zero semantic weight) only the full-text
        ranking runs; with no query text only the semantic one does.

        Raises:
            RetrievalError: If either query fails
        """
        start_time = time.perf_counter()
        use_text = bool(query_text and query_text.strip()) and options.full_text_weight > 0
        use_vector = bool(query_embedding) and options.semantic_weight > 0
        if not use_text and not use_vector:
            return []

        try:
            async with self.db.get_session() as session:
                text_rows = await self._full_text_rows(session, query_text, options) if use_text else []
                vector_rows = await self._semantic_rows(session, query_embedding, options) if use_vector else []
        except Exception as e:
            log.error("hybrid_search_failed", error=str(e))
            raise RetrievalError(f"Hybrid search failed: {e}") from e

        rows = {}
        for row in list(text_rows) + list(vector_rows):
            rows.setdefault(row.chunk_id, row)
        text_ids = [row.chunk_id for row in text_rows]
        vector_ids = [row.chunk_id for row in vector_rows]
        text_rank = {cid: rank for rank, cid in reversed(list(enumerate(text_ids, start=1)))}
        vector_rank = {cid: rank for rank, cid in reversed(list(enumerate(vector_ids, start=1)))}

        fused = reciprocal_rank_fusion(
            text_ids,
            vector_ids,
            full_text_weight=options.full_text_weight,
            semantic_weight=options.semantic_weight,
            rrf_k=options.rrf_k,
            tie_key=lambda cid: (rows[cid].chunk_index, str(cid)),
        )

        results = []
        for chunk_id, score in fused[:options.match_count]:
            row = rows[chunk_id]
            results.append(SearchResult(
                chunk_id=row.chunk_id,
                file_id=row.file_id,
                content=row.content,
                chunk_type=ChunkType(row.chunk_type),
                chunk_index=row.chunk_index,
                page_number=row.page_number,
                section_heading=row.section_heading,
                source_file_name=row.source_file_name or "",
                source_file_type=row.source_file_type or "",
                timestamp_start=row.timestamp_start,
                full_text_rank=text_rank.get(chunk_id),
                semantic_rank=vector_rank.get(chunk_id),
                rrf_score=score,
            ))

        latency_ms = (time.perf_counter() - start_time) * 1000
        log.info(
            "hybrid_search_completed",
            full_text_candidates=len(text_rows),
            semantic_candidates=len(vector_rows),
            results_returned=len(results),
            latency_ms=round(latency_ms, 2),
        )
        return results
