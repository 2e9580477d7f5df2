from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.config.settings import settings


def _get_async_database_url(url: str) -> str:
    """Convert database URL to async-compatible format.

    Hosting providers typically give postgresql:// URLs, but SQLAlchemy async
    requires postgresql+asyncpg:// for the asyncpg driver.
    """
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    return url


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Database:
    """Process-lifetime holder for the engine and its session factory.

    The FastAPI lifespan calls ``init()`` on startup and ``dispose()`` on
    shutdown. Nothing connects at import time.
    """

    def __init__(self) -> None:
        self.engine: AsyncEngine | None = None
        self.session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_initialized(self) -> bool:
        return self.engine is not None

    def init(self, database_url: str | None = None) -> AsyncEngine:
        if self.engine is not None:
            return self.engine

        url = _get_async_database_url(database_url or settings.DATABASE_URL)

        if url.startswith("sqlite"):
            engine = create_async_engine(
                url,
                echo=False,
                connect_args={"check_same_thread": False},
            )
        else:
            engine = create_async_engine(
                url,
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_timeout=settings.DB_POOL_TIMEOUT,
                pool_pre_ping=True,
                echo=False,
                connect_args={
                    "timeout": settings.DB_CONNECT_TIMEOUT,
                    "command_timeout": settings.DB_COMMAND_TIMEOUT,
                },
            )

        self.bind(engine)
        return engine

    def bind(self, engine: AsyncEngine) -> None:
        """Attach an existing engine (used by tests and standalone scripts)."""
        self.engine = engine
        self.session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )

    def session(self) -> AsyncSession:
        if self.session_factory is None:
            from src.core.exceptions import StorageUnavailable

            raise StorageUnavailable("Database has not been initialized")
        return self.session_factory()

    async def dispose(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
        self.engine = None
        self.session_factory = None


database = Database()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with database.session() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """Initialize database tables.

    This imports all models to ensure they are registered with SQLAlchemy's
    metadata before creating the tables.
    """
    # Import all models to register them with Base.metadata
    from src.domains import models  # noqa: F401

    engine = database.init()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
