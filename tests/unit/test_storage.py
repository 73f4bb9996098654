import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from caselens.exceptions import PersistenceError
from caselens.ingestion.storage import ChunkStore
from caselens.schemas.chunks import ChunkDraft, ChunkType


def _session_cm(session):
    cm = MagicMock()
    cm.__aenter__ = AsyncMock(return_value=session)
    cm.__aexit__ = AsyncMock(return_value=False)
    return cm


def _drafts():
    parent = ChunkDraft(content="Parent text.", chunk_type=ChunkType.PARENT, chunk_index=0, char_start=0, char_end=12)
    child_a = ChunkDraft(
        content="Parent ", chunk_type=ChunkType.CHILD, chunk_index=1, parent_index=0, char_start=0, char_end=7
    )
    child_b = ChunkDraft(
        content="text.", chunk_type=ChunkType.CHILD, chunk_index=2, parent_index=0, char_start=7, char_end=12
    )
    return [parent, child_a, child_b]


def _parent_session(parent_id):
    session = AsyncMock()
    inserted = MagicMock()
    inserted.all.return_value = [(parent_id, 0)]
    # advisory lock, delete, parent insert
    session.execute.side_effect = [MagicMock(), MagicMock(rowcount=5), inserted]
    return session


class TestReplaceChunks:

    @pytest.mark.asyncio
    async def test_replaces_parents_then_children(self):
        file_id = uuid.uuid4()
        parent_id = uuid.uuid4()
        parent_session = _parent_session(parent_id)
        child_session = AsyncMock()

        db = MagicMock()
        db.get_session.side_effect = [_session_cm(parent_session), _session_cm(child_session)]
        drafts = _drafts()
        embeddings = {drafts[0].key: [0.1, 0.2], drafts[1].key: None, drafts[2].key: [0.3, 0.4]}

        result = await ChunkStore(db).replace_chunks(file_id, "contract.pdf", "pdf", drafts, embeddings)

        assert result.parents_inserted == 1
        assert result.children_inserted == 2
        assert result.total == 3

        # Lock, delete and parent insert share one session
        assert parent_session.execute.await_count == 3
        lock_params = parent_session.execute.await_args_list[0].args[1]
        assert lock_params == {"lock_key": f"document_chunks:{file_id}"}
        parent_rows = parent_session.execute.await_args_list[2].args[1]
        assert parent_rows[0]["embedding"] == [0.1, 0.2]
        assert parent_rows[0]["source_file_name"] == "contract.pdf"

        child_rows = child_session.execute.await_args.args[1]
        assert [r["parent_chunk_id"] for r in child_rows] == [parent_id, parent_id]
        assert child_rows[0]["embedding"] is None
        assert child_rows[1]["chunk_index"] == 2

    @pytest.mark.asyncio
    async def test_child_failure_keeps_parents(self):
        parent_session = _parent_session(uuid.uuid4())
        child_session = AsyncMock()
        child_session.execute.side_effect = RuntimeError("deadlock detected")

        db = MagicMock()
        db.get_session.side_effect = [_session_cm(parent_session), _session_cm(child_session)]

        result = await ChunkStore(db).replace_chunks(uuid.uuid4(), "a.pdf", "pdf", _drafts(), {})

        assert result.parents_inserted == 1
        assert result.children_inserted == 0
        assert result.children_failed == 2

    @pytest.mark.asyncio
    async def test_parent_failure_raises(self, mock_db, mock_session):
        mock_session.execute.side_effect = [MagicMock(), MagicMock(), RuntimeError("connection lost")]

        with pytest.raises(PersistenceError):
            await ChunkStore(mock_db).replace_chunks(uuid.uuid4(), "a.pdf", "pdf", _drafts(), {})

        # Children are never attempted
        assert mock_db.get_session.call_count == 1

    @pytest.mark.asyncio
    async def test_empty_drafts_only_delete(self, mock_db, mock_session):
        result = await ChunkStore(mock_db).replace_chunks(uuid.uuid4(), "a.txt", "text", [], {})

        assert result.total == 0
        # Lock and delete only
        assert mock_session.execute.await_count == 2


class TestReadChunks:

    @pytest.mark.asyncio
    async def test_get_chunk_missing(self, mock_db, mock_session):
        mock_session.get.return_value = None
        assert await ChunkStore(mock_db).get_chunk(uuid.uuid4()) is None

    @pytest.mark.asyncio
    async def test_count_chunks(self, mock_db, mock_session):
        result = MagicMock()
        result.scalar_one.return_value = 7
        mock_session.execute.return_value = result

        assert await ChunkStore(mock_db).count_chunks(uuid.uuid4()) == 7
