import contextlib
from typing import AsyncIterator
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.sql import text
from caselens.config import Settings
# Import models so they are registered with Base metadata
from caselens.models import Base, FileRecord, DocumentChunk, ChatMessage  # noqa: F401


class DatabaseManager:
    """
    Owns the async engine and session factory.

    Constructed once at process start and handed to every component that
    touches the database.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        # Ensure we use the async driver
        url = settings.database_url.replace("postgresql://", "postgresql+psycopg://")
        statement_timeout_ms = int(settings.timeout.db_seconds * 1000)

        self.engine = create_async_engine(
            url,
            echo=False,
            pool_size=5,
            max_overflow=10,
            connect_args={"options": f"-c statement_timeout={statement_timeout_ms}"},
        )
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            autoflush=False
        )

    async def init_db(self):
        """Initialize database: create extension and tables."""
        async with self.engine.begin() as conn:
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            await conn.run_sync(Base.metadata.create_all)

    @contextlib.asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """Provide a transactional scope around a series of operations."""
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def dispose(self):
        await self.engine.dispose()
