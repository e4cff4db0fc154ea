"""SQLAlchemy database session and engine configuration."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from client_payments.config import get_settings


def _get_async_url(url: str) -> str:
    """Convert a sync SQLAlchemy URL to an async one."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    return url


def build_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(
        _get_async_url(database_url),
        pool_pre_ping=True,
        future=True,
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


settings = get_settings()

# Both stay None when no database URL is configured; the records API then answers 503.
engine: AsyncEngine | None = build_engine(settings.database_url) if settings.database_url.strip() else None
async_session_factory: async_sessionmaker[AsyncSession] | None = (
    build_session_factory(engine) if engine is not None else None
)
