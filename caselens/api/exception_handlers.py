"""Custom exception handlers for the API."""
from fastapi import Request
from fastapi.responses import JSONResponse

from caselens.exceptions import (
    ChatException,
    ConversationBusyError,
    EmbeddingError,
    EmptyMessageError,
    FileRecordNotFoundError,
    GenerationError,
    GenerationErrorCategory,
    IngestionException,
    QueryPreprocessingError,
    RetrievalException,
    StorageException,
)
from caselens.logging_config import get_logger

log = get_logger(__name__)


async def generation_error_handler(request: Request, exc: GenerationError) -> JSONResponse:
    """Handle model-call errors. Only the classified message reaches the client."""
    log.error("generation_error", path=request.url.path, category=exc.category, error=str(exc))

    status_code = 503  # Service Unavailable
    if exc.category == GenerationErrorCategory.RATE_LIMIT:
        status_code = 429  # Too Many Requests

    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.user_message, "error_type": exc.__class__.__name__, "category": exc.category}
    )


async def retrieval_error_handler(request: Request, exc: RetrievalException) -> JSONResponse:
    """Handle retrieval/search errors."""
    log.error("retrieval_error", path=request.url.path, error=str(exc))

    if isinstance(exc, QueryPreprocessingError):
        return JSONResponse(
            status_code=400,
            content={"detail": "Invalid query format.", "error_type": "QueryPreprocessingError"}
        )

    return JSONResponse(
        status_code=503,
        content={"detail": "Search service temporarily unavailable.", "error_type": exc.__class__.__name__}
    )


async def ingestion_error_handler(request: Request, exc: IngestionException) -> JSONResponse:
    """Handle ingestion errors raised outside a processing run."""
    log.error("ingestion_error", path=request.url.path, error=str(exc))

    if isinstance(exc, FileRecordNotFoundError):
        return JSONResponse(
            status_code=404,
            content={"detail": "File not found.", "error_type": "FileRecordNotFoundError"}
        )
    if isinstance(exc, EmbeddingError):
        return JSONResponse(
            status_code=503,
            content={"detail": "Embedding service temporarily unavailable.", "error_type": "EmbeddingError"}
        )

    return JSONResponse(
        status_code=500,
        content={"detail": "Document processing failed.", "error_type": exc.__class__.__name__}
    )


async def storage_error_handler(request: Request, exc: StorageException) -> JSONResponse:
    """Handle database/storage errors."""
    log.error("storage_error", path=request.url.path, error=str(exc))

    return JSONResponse(
        status_code=503,
        content={"detail": "Database service unavailable.", "error_type": "StorageException"}
    )


async def chat_error_handler(request: Request, exc: ChatException) -> JSONResponse:
    """Handle conversation state errors."""
    log.warning("chat_error", path=request.url.path, error=str(exc))

    if isinstance(exc, ConversationBusyError):
        return JSONResponse(
            status_code=409,
            content={"detail": "An answer is already being generated for this conversation.",
                     "error_type": "ConversationBusyError"}
        )
    if isinstance(exc, EmptyMessageError):
        return JSONResponse(
            status_code=400,
            content={"detail": "Message content is empty.", "error_type": "EmptyMessageError"}
        )

    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid chat request.", "error_type": exc.__class__.__name__}
    )
