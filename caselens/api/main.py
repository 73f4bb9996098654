"""
FastAPI application for caselens.
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from sqlalchemy import text

from caselens.api.exception_handlers import (
    chat_error_handler,
    generation_error_handler,
    ingestion_error_handler,
    retrieval_error_handler,
    storage_error_handler,
)
from caselens.api.routers import chat, files, search
from caselens.config import get_settings
from caselens.container import Services, build_services
from caselens.exceptions import (
    ChatException,
    GenerationError,
    IngestionException,
    RetrievalException,
    StorageException,
)
from caselens.logging_config import configure_logging, get_logger
from caselens.observability import configure_observability

log = get_logger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the app. With `services` given (tests), the lifespan uses them
    as-is instead of building a container from settings.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan: startup and shutdown events."""
        owned = services is None
        if owned:
            settings = get_settings()
            configure_logging(log_level=settings.log_level, json_format=settings.json_logs)
            configure_observability(settings)
            app.state.services = build_services(settings)
        else:
            app.state.services = services
        log.info("api_startup")
        yield
        log.info("api_shutdown")
        if owned:
            await app.state.services.close()

    app = FastAPI(
        title="caselens API",
        description="Document processing, hybrid search and grounded chat for legal case files",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(files.router)
    app.include_router(search.router)
    app.include_router(chat.router)

    # Exception handlers
    app.add_exception_handler(GenerationError, generation_error_handler)
    app.add_exception_handler(RetrievalException, retrieval_error_handler)
    app.add_exception_handler(IngestionException, ingestion_error_handler)
    app.add_exception_handler(StorageException, storage_error_handler)
    app.add_exception_handler(ChatException, chat_error_handler)

    @app.get("/health")
    async def health_check():
        """Health check with dependency verification."""
        checks = {"api": "healthy"}

        # Check database
        try:
            async with app.state.services.db.get_session() as session:
                await session.execute(text("SELECT 1"))
            checks["database"] = "healthy"
        except Exception as e:
            checks["database"] = f"unhealthy: {str(e)}"

        # Overall status
        all_healthy = all(v == "healthy" for v in checks.values())
        status_code = 200 if all_healthy else 503

        return JSONResponse(
            content={"status": "healthy" if all_healthy else "degraded", "checks": checks},
            status_code=status_code
        )

    return app


app = create_app()
