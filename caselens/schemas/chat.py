"""Schemas for conversations, citations and routed answers."""
import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from caselens.schemas.files import FileContext


class EffortLevel(str, Enum):
    QUICK = "quick"
    STANDARD = "standard"
    THOROUGH = "thorough"
    DEEP = "deep"


class QueryComplexity(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    DEEP = "deep"


class ModelChoice(str, Enum):
    FAST = "fast"            # Multimodal, low latency
    REASONING = "reasoning"  # Higher-reasoning model


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ConversationTurn(BaseModel):
    """A prior turn as the router sees it: role and content only."""
    role: Role
    content: str


class FileChunkCitation(BaseModel):
    """Citation pointing at a retrieved document chunk."""
    kind: Literal["file_chunk"] = "file_chunk"
    source_index: int = Field(..., ge=1)
    chunk_id: uuid.UUID
    file_id: uuid.UUID
    file_name: str
    file_type: str
    page_number: Optional[int] = None
    section_heading: Optional[str] = None
    content_preview: str
    timestamp_start: Optional[float] = None


class ExhibitCitation(BaseModel):
    """Citation pointing at a case exhibit managed outside this package."""
    kind: Literal["exhibit"] = "exhibit"
    source_index: int = Field(..., ge=1)
    exhibit_id: uuid.UUID
    label: str
    description: Optional[str] = None


ChatSource = Annotated[Union[FileChunkCitation, ExhibitCitation], Field(discriminator="kind")]

chat_sources_adapter = TypeAdapter(List[ChatSource])


class AnswerResult(BaseModel):
    """What the answer router hands back on success."""
    response: str
    model: str                  # Concrete model identifier used
    model_choice: ModelChoice
    complexity: QueryComplexity
    effort_level: EffortLevel
    citations: List[int] = Field(default_factory=list)  # [Source N] numbers found in the response


class SendMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, description="The user's question.")
    file_context: Optional[FileContext] = None
    effort_level: EffortLevel = EffortLevel.STANDARD


class ChatMessageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    role: Role
    content: str
    model: Optional[str] = None
    file_context: Optional[str] = None
    sources: Optional[List[ChatSource]] = None
    complexity: Optional[QueryComplexity] = None
    effort_level: Optional[EffortLevel] = None
    created_at: Optional[datetime] = None
