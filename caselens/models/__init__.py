from caselens.models.base import Base
from caselens.models.file_record import FileRecord
from caselens.models.document_chunk import DocumentChunk
from caselens.models.chat_message import ChatMessage

__all__ = ["Base", "FileRecord", "DocumentChunk", "ChatMessage"]
