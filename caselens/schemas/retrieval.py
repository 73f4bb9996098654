"""Pydantic schemas for hybrid retrieval."""
import uuid
from typing import List, Optional
from pydantic import BaseModel, Field, model_validator
from caselens.schemas.chunks import ChunkType
from caselens.schemas.files import FileType


class SearchOptions(BaseModel):
    """
    Scope and fusion parameters for one hybrid search.

    Weights multiply each ranking's reciprocal-rank term; `rrf_k` damps the
    advantage of the very top ranks.
    """
    project_id: Optional[uuid.UUID] = None
    file_type: Optional[FileType] = None
    match_count: int = Field(default=8, ge=1, le=100)
    full_text_weight: float = Field(default=1.0, ge=0)
    semantic_weight: float = Field(default=1.0, ge=0)
    rrf_k: int = Field(default=50, ge=1)
    candidate_multiplier: int = Field(default=4, ge=1)

    @model_validator(mode="after")
    def check_weights(self):
        if self.full_text_weight == 0 and self.semantic_weight == 0:
            raise ValueError("At least one of full_text_weight / semantic_weight must be positive")
        return self

    @property
    def candidate_count(self) -> int:
        return self.match_count * self.candidate_multiplier


class SearchResult(BaseModel):
    """A single fused search hit."""
    chunk_id: uuid.UUID
    file_id: uuid.UUID
    content: str
    chunk_type: ChunkType
    chunk_index: int
    page_number: Optional[int] = None
    section_heading: Optional[str] = None
    source_file_name: str
    source_file_type: str
    timestamp_start: Optional[float] = None
    full_text_rank: Optional[int] = None
    semantic_rank: Optional[int] = None
    rrf_score: float


class SearchRequest(BaseModel):
    """Public search request."""
    query: str = Field(..., min_length=1, description="Natural-language query.")
    project_id: uuid.UUID
    file_type: Optional[FileType] = None
    match_count: int = Field(default=8, ge=1, le=100)
    full_text_weight: Optional[float] = Field(default=None, ge=0)
    semantic_weight: Optional[float] = Field(default=None, ge=0)
    rrf_k: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def check_weights(self):
        if self.full_text_weight == 0 and self.semantic_weight == 0:
            raise ValueError("At least one of full_text_weight / semantic_weight must be positive")
        return self


class SearchResponse(BaseModel):
    query: str
    results: List[SearchResult]

    @property
    def result_count(self) -> int:
        return len(self.results)
