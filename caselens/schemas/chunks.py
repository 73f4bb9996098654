import uuid
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict


class ChunkType(str, Enum):
    PARENT = "parent"
    CHILD = "child"


class TranscriptSegment(BaseModel):
    """A timed piece of a speech-to-text transcript (seconds)."""
    text: str
    start: float
    end: float


class ExtractedDocument(BaseModel):
    """Output of extraction: plain text plus whatever structure survived."""
    text: str
    file_type: str
    method: str  # Which strategy produced the text, e.g. "pdf_text_layer"
    page_breaks: List[int] = Field(default_factory=list)  # Offsets where pages 2..n start
    segments: List[TranscriptSegment] = Field(default_factory=list)


# Input: produced by the chunker, before any database id exists
class ChunkDraft(BaseModel):
    key: str = Field(default_factory=lambda: uuid.uuid4().hex)  # Stable id within a run
    content: str
    chunk_type: ChunkType
    chunk_index: int
    parent_index: Optional[int] = None  # chunk_index of the parent, children only
    char_start: int
    char_end: int
    page_number: Optional[int] = None
    section_heading: Optional[str] = None
    timestamp_start: Optional[float] = None
    timestamp_end: Optional[float] = None


# Output: what we read FROM the database
class ChunkResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    file_id: uuid.UUID
    content: str
    chunk_type: ChunkType
    chunk_index: int
    parent_chunk_id: Optional[uuid.UUID] = None
    page_number: Optional[int] = None
    section_heading: Optional[str] = None
    char_start: int
    char_end: int
    timestamp_start: Optional[float] = None
    timestamp_end: Optional[float] = None
    source_file_name: str
    source_file_type: str


class ReplaceResult(BaseModel):
    """How many chunks a replace actually persisted."""
    parents_inserted: int = 0
    children_inserted: int = 0
    children_failed: int = 0

    @property
    def total(self) -> int:
        return self.parents_inserted + self.children_inserted
