"""Database connection and session management."""

from collections.abc import AsyncGenerator
from typing import Annotated, Any

from fastapi import Depends
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from bizportal.config import Settings, get_settings

# Engine and session factory (lazy initialized)
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    """Get or create the async database engine."""
    global _engine
    if _engine is None:
        if settings is None:
            settings = get_settings()
        engine_kwargs: dict[str, Any] = {"echo": settings.app_debug}
        # SQLite (local runs) uses a single-connection pool
        if not settings.database_url.startswith("sqlite"):
            engine_kwargs["pool_size"] = settings.database_pool_size
            engine_kwargs["max_overflow"] = settings.database_max_overflow
        _engine = create_async_engine(settings.database_url, **engine_kwargs)
    assert _engine is not None
    return _engine


def get_session_factory(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory."""
    global _async_session_factory
    if _async_session_factory is None:
        engine = get_engine(settings)
        _async_session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    assert _async_session_factory is not None
    return _async_session_factory


async def dispose_engine() -> None:
    """Dispose the engine on shutdown."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _async_session_factory = None


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get a database session.

    Portal services commit at their own commit points; the final commit
    here only flushes what a route left pending.
    """
    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# Type alias for dependency injection
SessionDep = Annotated[AsyncSession, Depends(get_session)]
