import uuid
from datetime import datetime
from sqlalchemy import Column, Computed, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID, TSVECTOR
from sqlalchemy.orm import relationship
from pgvector.sqlalchemy import Vector
from caselens.models.base import Base
from caselens.config import get_settings

# The table schema depends on the embedding dimension configured
# when the tables are first created
EMBEDDING_DIM = get_settings().embedding.dimension


class DocumentChunk(Base):
    __tablename__ = "document_chunks"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    file_id = Column(UUID(as_uuid=True), ForeignKey("files.id", ondelete="CASCADE"), nullable=False, index=True)

    content = Column(Text, nullable=False)
    chunk_type = Column(String(16), nullable=False)  # "parent" | "child"
    chunk_index = Column(Integer, nullable=False)
    parent_chunk_id = Column(
        UUID(as_uuid=True),
        ForeignKey("document_chunks.id", ondelete="CASCADE"),
        nullable=True,
    )

    # Position metadata
    page_number = Column(Integer, nullable=True)
    section_heading = Column(Text, nullable=True)
    char_start = Column(Integer, nullable=False)
    char_end = Column(Integer, nullable=False)
    timestamp_start = Column(Float, nullable=True)
    timestamp_end = Column(Float, nullable=True)

    # Denormalized for citations
    source_file_name = Column(String, nullable=False)
    source_file_type = Column(String, nullable=False)

    # NULL when the provider could not embed this chunk
    embedding = Column(Vector(EMBEDDING_DIM), nullable=True)
    fts = Column(TSVECTOR, Computed("to_tsvector('english', content)", persisted=True))

    created_at = Column(DateTime, default=datetime.utcnow)

    file = relationship("FileRecord", back_populates="chunks")
    parent = relationship("DocumentChunk", remote_side=[id])

    __table_args__ = (
        Index("ix_document_chunks_file_index", "file_id", "chunk_index", unique=True),
        Index("ix_document_chunks_fts", "fts", postgresql_using="gin"),
        Index(
            "ix_document_chunks_embedding",
            "embedding",
            postgresql_using="hnsw",
            postgresql_ops={"embedding": "vector_cosine_ops"},
        ),
    )
