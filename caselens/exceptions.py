"""
Custom exception classes for the document ingestion pipeline.
"""

class IngestionException(Exception):
    """Base exception for all ingestion-related errors."""
    pass

class StorageException(Exception):
    """Base exception for all storage-related errors."""
    pass

class FileRecordNotFoundError(IngestionException):
    """Raised when the file row to process does not exist in the project."""
    pass

class BlobDownloadError(StorageException):
    """Raised when the uploaded file cannot be fetched from blob storage."""
    pass

class ExtractionError(IngestionException):
    """Raised when every extraction strategy for a file has failed."""
    pass

class ChunkingError(IngestionException):
    """Raised when text chunking fails."""
    pass

class EmbeddingError(IngestionException):
    """Raised when embedding generation fails after retries."""
    pass

class PersistenceError(StorageException):
    """Raised when parent chunks cannot be written."""
    pass


"""
Custom exception classes for the query pipeline.
"""
class RetrievalException(Exception):
    """Base exception for all retrieval-related errors."""
    pass

class QueryPreprocessingError(RetrievalException):
    """Raised when query preprocessing fails."""
    pass

class RetrievalError(RetrievalException):
    """Raised when the hybrid search query fails."""
    pass


"""
Custom exception classes for answer generation.
"""
class GenerationErrorCategory:
    """User-facing failure categories for generation errors."""
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    MODEL_UNAVAILABLE = "model_unavailable"
    CONTENT_BLOCKED = "content_blocked"
    GENERIC = "generic"


class GenerationError(Exception):
    """
    Base exception for model-call failures.

    `user_message` is safe to show to end users; the provider's own text only
    lives in `str(exc)` and the chained cause.
    """
    def __init__(
        self,
        message: str,
        category: str = GenerationErrorCategory.GENERIC,
        user_message: str = None,
    ):
        super().__init__(message)
        self.category = category
        self.user_message = user_message or "An unexpected error occurred. Please try again."

class GenerationRateLimitError(GenerationError):
    """Provider rate limit or quota exceeded."""
    def __init__(self, message: str, retry_after: float = None):
        super().__init__(message, category=GenerationErrorCategory.RATE_LIMIT)
        self.retry_after = retry_after

class GenerationTimeoutError(GenerationError):
    """Provider call timed out."""
    def __init__(self, message: str):
        super().__init__(message, category=GenerationErrorCategory.NETWORK)


"""
Custom exception classes for conversations.
"""
class ChatException(Exception):
    """Base exception for chat errors."""
    pass

class EmptyMessageError(ChatException):
    """Raised when a blank message is sent."""
    pass

class ConversationBusyError(ChatException):
    """Raised when a conversation already has an answer in flight."""
    pass
