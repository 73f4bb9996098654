import uuid
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from caselens.models.base import Base


class FileRecord(Base):
    """
    An uploaded file. The surrounding application owns creation and deletion;
    the ingestion pipeline only updates the processing columns.
    """
    __tablename__ = "files"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    name = Column(String, nullable=False)
    file_path = Column(String, nullable=False)  # Path inside blob storage
    file_type = Column(String, nullable=True)   # Coarse type: pdf, image, audio...
    mime_type = Column(String, nullable=True)

    # Processing state
    processing_status = Column(String, nullable=False, default="pending")
    processing_error = Column(Text, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    ai_summary = Column(Text, nullable=True)
    extracted_text = Column(Text, nullable=True)
    chunk_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)

    chunks = relationship("DocumentChunk", back_populates="file", passive_deletes=True)
