import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from caselens.exceptions import FileRecordNotFoundError
from caselens.ingestion.file_repository import FileRepository
from caselens.ingestion.pipeline import DocumentProcessor
from caselens.schemas.processing import ProcessingStatus

FILE_ID = uuid.uuid4()
PROJECT_ID = uuid.uuid4()


def _no_row():
    result = MagicMock()
    result.scalar_one_or_none.return_value = None
    return result


class TestFileRepository:

    @pytest.mark.asyncio
    async def test_get_file_outside_project_raises(self, mock_db, mock_session):
        mock_session.execute.return_value = _no_row()

        with pytest.raises(FileRecordNotFoundError):
            await FileRepository(mock_db).get_file(FILE_ID, PROJECT_ID)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("call", ["processing", "completed", "failed"])
    async def test_status_updates_are_scoped_to_project(self, mock_db, mock_session, call):
        files = FileRepository(mock_db, max_extracted_chars=10)
        if call == "processing":
            await files.mark_processing(FILE_ID, PROJECT_ID)
        elif call == "completed":
            await files.mark_completed(FILE_ID, PROJECT_ID, summary="s", extracted_text="x" * 20, chunk_count=3)
        else:
            await files.mark_failed(FILE_ID, PROJECT_ID, "boom")

        statement = mock_session.execute.await_args.args[0]
        sql = str(statement)
        assert sql.startswith("UPDATE files")
        assert "files.id = " in sql
        assert "files.project_id = " in sql
        assert statement.compile().params["project_id_1"] == PROJECT_ID

    @pytest.mark.asyncio
    async def test_extracted_text_is_capped(self, mock_db, mock_session):
        await FileRepository(mock_db, max_extracted_chars=10).mark_completed(
            FILE_ID, PROJECT_ID, summary="s", extracted_text="x" * 20, chunk_count=3
        )

        params = mock_session.execute.await_args.args[0].compile().params
        assert params["extracted_text"] == "x" * 10


@pytest.mark.asyncio
async def test_processing_foreign_file_writes_nothing(mock_db, mock_session):
    mock_session.execute.return_value = _no_row()
    storage = MagicMock()
    storage.download = AsyncMock()
    processor = DocumentProcessor(
        FileRepository(mock_db), storage, MagicMock(), MagicMock(), MagicMock(), MagicMock(), MagicMock()
    )

    result = await processor.process(FILE_ID, PROJECT_ID)

    assert result.status == ProcessingStatus.FAILED
    # Only the scoped SELECT ran
    assert mock_session.execute.await_count == 1
    statement = mock_session.execute.await_args.args[0]
    assert str(statement).startswith("SELECT")
    storage.download.assert_not_awaited()
