import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update

from caselens.db.db_manager import DatabaseManager
from caselens.exceptions import FileRecordNotFoundError
from caselens.logging_config import get_logger
from caselens.models.file_record import FileRecord
from caselens.schemas.processing import ProcessingStatus

log = get_logger(__name__)


class FileRepository:
    """Reads file rows and writes the processing columns the pipeline owns."""

    def __init__(self, db: DatabaseManager, max_extracted_chars: int = 50_000):
        self.db = db
        self.max_extracted_chars = max_extracted_chars

    async def get_file(self, file_id: uuid.UUID, project_id: uuid.UUID) -> FileRecord:
        async with self.db.get_session() as session:
            result = await session.execute(
                select(FileRecord).where(FileRecord.id == file_id, FileRecord.project_id == project_id)
            )
            file = result.scalar_one_or_none()
        if file is None:
            raise FileRecordNotFoundError(f"File not found: {file_id}")
        return file

    async def mark_processing(self, file_id: uuid.UUID, project_id: uuid.UUID) -> None:
        await self._update(
            file_id,
            project_id,
            processing_status=ProcessingStatus.PROCESSING.value,
            processing_error=None,
        )

    async def mark_completed(
        self,
        file_id: uuid.UUID,
        project_id: uuid.UUID,
        summary: str,
        extracted_text: str,
        chunk_count: int,
    ) -> None:
        await self._update(
            file_id,
            project_id,
            processing_status=ProcessingStatus.COMPLETED.value,
            processing_error=None,
            processed_at=datetime.utcnow(),
            ai_summary=summary,
            extracted_text=extracted_text[:self.max_extracted_chars],
            chunk_count=chunk_count,
        )

    async def mark_failed(self, file_id: uuid.UUID, project_id: uuid.UUID, error: str) -> None:
        await self._update(
            file_id,
            project_id,
            processing_status=ProcessingStatus.FAILED.value,
            processing_error=error,
        )

    async def _update(self, file_id: uuid.UUID, project_id: uuid.UUID, **values) -> None:
        # Status writes never reach a row outside the caller's project
        async with self.db.get_session() as session:
            await session.execute(
                update(FileRecord)
                .where(FileRecord.id == file_id, FileRecord.project_id == project_id)
                .values(**values)
            )
        log.debug("file_record_updated", file_id=str(file_id), status=values.get("processing_status"))
