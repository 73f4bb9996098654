import uuid
from typing import Dict, List, Mapping, Optional, Sequence

from sqlalchemy import delete, func, insert, select, text

from caselens.db.db_manager import DatabaseManager
from caselens.exceptions import PersistenceError
from caselens.logging_config import get_logger
from caselens.models.document_chunk import DocumentChunk
from caselens.observability import track, Phase
from caselens.schemas.chunks import ChunkDraft, ChunkResponse, ChunkType, ReplaceResult

log = get_logger(__name__)


class ChunkStore:
    """
    Writes a file's chunk set as a full replacement.

    Deleting the old set and inserting the new parents share one transaction,
    so concurrent readers see either the previous chunks or the new parents,
    never an empty file. Children are written in a second transaction; a
    failure there is logged and leaves the parents in place.
    """

    def __init__(self, db: DatabaseManager):
        self.db = db

    @track(name="replace_chunks", phase=Phase.INGESTION)
    async def replace_chunks(
        self,
        file_id: uuid.UUID,
        source_file_name: str,
        source_file_type: str,
        drafts: Sequence[ChunkDraft],
        embeddings: Mapping[str, Optional[List[float]]],
    ) -> ReplaceResult:
        """
        Replace every chunk of a file.

        Args:
            drafts: Chunker output for this run
            embeddings: Vector per draft key; None stores a NULL embedding

        Raises:
            PersistenceError: If the delete or the parent insert fails
        """
        parents = [d for d in drafts if d.chunk_type == ChunkType.PARENT]
        children = [d for d in drafts if d.chunk_type == ChunkType.CHILD]

        def row(draft: ChunkDraft, parent_chunk_id: Optional[uuid.UUID] = None) -> dict:
            return {
                "file_id": file_id,
                "content": draft.content,
                "chunk_type": draft.chunk_type.value,
                "chunk_index": draft.chunk_index,
                "parent_chunk_id": parent_chunk_id,
                "page_number": draft.page_number,
                "section_heading": draft.section_heading,
                "char_start": draft.char_start,
                "char_end": draft.char_end,
                "timestamp_start": draft.timestamp_start,
                "timestamp_end": draft.timestamp_end,
                "source_file_name": source_file_name,
                "source_file_type": source_file_type,
                "embedding": embeddings.get(draft.key),
            }

        # 1. Delete + parents, atomically
        parent_ids: Dict[int, uuid.UUID] = {}
        try:
            async with self.db.get_session() as session:
                # Serialize concurrent reprocessing of the same file
                await session.execute(
                    text("SELECT pg_advisory_xact_lock(hashtext(:lock_key))"),
                    {"lock_key": f"document_chunks:{file_id}"},
                )
                deleted = await session.execute(delete(DocumentChunk).where(DocumentChunk.file_id == file_id))
                if parents:
                    result = await session.execute(
                        insert(DocumentChunk).returning(DocumentChunk.id, DocumentChunk.chunk_index),
                        [row(p) for p in parents],
                    )
                    for chunk_id, chunk_index in result.all():
                        parent_ids[chunk_index] = chunk_id
        except Exception as e:
            log.error("parent_chunk_insert_failed", file_id=str(file_id), parents=len(parents), error=str(e))
            raise PersistenceError(f"Failed to insert parent chunks: {e}") from e

        log.info(
            "parent_chunks_replaced",
            file_id=str(file_id),
            deleted=getattr(deleted, "rowcount", None),
            parents=len(parent_ids),
        )
        replace_result = ReplaceResult(parents_inserted=len(parent_ids))

        # 2. Children, best effort
        if children:
            child_rows = []
            orphans = 0
            for child in children:
                parent_chunk_id = parent_ids.get(child.parent_index) if child.parent_index is not None else None
                if parent_chunk_id is None:
                    orphans += 1
                child_rows.append(row(child, parent_chunk_id))
            if orphans:
                log.warning("child_chunks_without_parent", file_id=str(file_id), count=orphans)

            try:
                async with self.db.get_session() as session:
                    await session.execute(insert(DocumentChunk), child_rows)
                replace_result.children_inserted = len(child_rows)
            except Exception as e:
                replace_result.children_failed = len(child_rows)
                log.error("child_chunk_insert_failed", file_id=str(file_id), children=len(child_rows), error=str(e))

        return replace_result

    async def get_chunk(self, chunk_id: uuid.UUID) -> Optional[ChunkResponse]:
        """Look up one chunk, e.g. to preview a citation."""
        async with self.db.get_session() as session:
            chunk = await session.get(DocumentChunk, chunk_id)
            return ChunkResponse.model_validate(chunk) if chunk else None

    async def list_chunks(self, file_id: uuid.UUID) -> List[ChunkResponse]:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(DocumentChunk)
                .where(DocumentChunk.file_id == file_id)
                .order_by(DocumentChunk.chunk_index)
            )
            return [ChunkResponse.model_validate(c) for c in result.scalars().all()]

    async def count_chunks(self, file_id: uuid.UUID) -> int:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(func.count()).select_from(DocumentChunk).where(DocumentChunk.file_id == file_id)
            )
            return result.scalar_one()
