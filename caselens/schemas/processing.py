"""Schemas for the file processing entrypoint."""
import uuid
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ProcessRequest(BaseModel):
    """Request to (re)process one uploaded file."""
    project_id: uuid.UUID = Field(..., description="Project the file belongs to")


class ProcessingResult(BaseModel):
    """Outcome of one processing run."""
    status: ProcessingStatus
    chunks_created: int = 0
    summary: Optional[str] = None
    error: Optional[str] = None
