"""Unit tests for rank fusion and the hybrid retriever."""
import uuid
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from caselens.exceptions import RetrievalError
from caselens.retrieval.hybrid_search import HybridRetriever, reciprocal_rank_fusion
from caselens.schemas.files import FileType
from caselens.schemas.retrieval import SearchOptions


class TestReciprocalRankFusion:

    def test_single_ranking_keeps_order(self):
        fused = reciprocal_rank_fusion(["a", "b", "c"], [])
        assert [item for item, _ in fused] == ["a", "b", "c"]
        assert fused[0][1] == pytest.approx(1 / 51)

    def test_item_in_both_rankings_wins(self):
        fused = reciprocal_rank_fusion(["a", "b"], ["b", "c"])
        assert fused[0][0] == "b"
        assert fused[0][1] == pytest.approx(1 / 52 + 1 / 51)

    def test_absent_ranking_contributes_nothing(self):
        fused = dict(reciprocal_rank_fusion(["a"], ["b"], rrf_k=10))
        assert fused["a"] == pytest.approx(1 / 11)
        assert fused["b"] == pytest.approx(1 / 11)

    def test_weights_scale_contribution(self):
        fused = reciprocal_rank_fusion(["text"], ["vector"], full_text_weight=1.0, semantic_weight=2.0)
        assert [item for item, _ in fused] == ["vector", "text"]

    def test_better_rank_never_scores_lower(self):
        fused = dict(reciprocal_rank_fusion(["a", "b", "c", "d"], ["d", "c", "b", "a"], full_text_weight=2.0))
        assert fused["a"] > fused["b"] > fused["c"] > fused["d"]

    def test_duplicates_count_once(self):
        fused = dict(reciprocal_rank_fusion(["a", "a", "b"], []))
        assert fused["a"] == pytest.approx(1 / 51)
        assert fused["b"] == pytest.approx(1 / 53)

    def test_ties_use_tie_key(self):
        order = {"x": 2, "y": 1}
        fused = reciprocal_rank_fusion(["x"], ["y"], tie_key=lambda item: (order[item],))
        assert [item for item, _ in fused] == ["y", "x"]

    def test_empty(self):
        assert reciprocal_rank_fusion([], []) == []


def _row(chunk_index: int, content: str = "text", chunk_id=None):
    return SimpleNamespace(
        chunk_id=chunk_id or uuid.uuid4(),
        file_id=uuid.uuid4(),
        content=content,
        chunk_type="child",
        chunk_index=chunk_index,
        page_number=1,
        section_heading=None,
        source_file_name="contract.pdf",
        source_file_type="pdf",
        timestamp_start=None,
    )


def _result(rows):
    result = MagicMock()
    result.fetchall.return_value = rows
    return result


class TestHybridRetriever:

    @pytest.mark.asyncio
    async def test_fuses_both_rankings(self, mock_db, mock_session):
        shared, text_only, vector_only = _row(3), _row(1), _row(2)
        mock_session.execute.side_effect = [
            _result([text_only, shared]),
            _result([shared, vector_only]),
        ]

        results = await HybridRetriever(mock_db).search("termination notice", [0.1, 0.2], SearchOptions())

        assert results[0].chunk_id == shared.chunk_id
        assert results[0].full_text_rank == 2
        assert results[0].semantic_rank == 1
        assert [r.chunk_id for r in results[1:]] == [text_only.chunk_id, vector_only.chunk_id]
        assert results[1].semantic_rank is None
        assert mock_session.execute.await_count == 2

    @pytest.mark.asyncio
    async def test_text_only_without_embedding(self, mock_db, mock_session):
        row = _row(0)
        mock_session.execute.return_value = _result([row])

        results = await HybridRetriever(mock_db).search("salary", None, SearchOptions())

        assert len(results) == 1
        assert results[0].semantic_rank is None
        assert mock_session.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_scope_and_candidate_limit(self, mock_db, mock_session):
        mock_session.execute.return_value = _result([])
        project_id = uuid.uuid4()
        options = SearchOptions(project_id=project_id, file_type=FileType.PDF, match_count=5, candidate_multiplier=3)

        await HybridRetriever(mock_db).search("salary", None, options)

        statement, params = mock_session.execute.await_args.args
        assert params["project_id"] == project_id
        assert params["file_type"] == "pdf"
        assert params["limit"] == 15
        assert "f.project_id = :project_id" in str(statement)

    @pytest.mark.asyncio
    async def test_truncates_to_match_count(self, mock_db, mock_session):
        mock_session.execute.return_value = _result([_row(i) for i in range(10)])
        results = await HybridRetriever(mock_db).search("salary", None, SearchOptions(match_count=3))
        assert [r.chunk_index for r in results] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_blank_query_without_embedding_returns_nothing(self, mock_db, mock_session):
        assert await HybridRetriever(mock_db).search("   ", None, SearchOptions()) == []
        mock_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_database_failure_raises(self, mock_db, mock_session):
        mock_session.execute.side_effect = Exception("relation does not exist")
        with pytest.raises(RetrievalError):
            await HybridRetriever(mock_db).search("salary", [0.1], SearchOptions())
