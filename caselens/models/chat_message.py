import uuid
from datetime import datetime
from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.dialects.postgresql import UUID, JSONB
from caselens.models.base import Base


class ChatMessage(Base):
    """A persisted conversation turn. Rows are never updated, only bulk deleted."""
    __tablename__ = "chat_messages"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    role = Column(String(16), nullable=False)  # "user" | "assistant"
    content = Column(Text, nullable=False)
    model = Column(String, nullable=True)
    file_context = Column(Text, nullable=True)
    sources = Column(JSONB, nullable=True)
    complexity = Column(String(16), nullable=True)
    effort_level = Column(String(16), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
