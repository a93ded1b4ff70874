"""
Async engine, session factory and request-scoped session dependency.

Services never open their own engine: request handlers get an
``AsyncSession`` from ``get_db`` (committed when the handler returns,
rolled back when it raises), and the transaction helpers in
``worksync.core.transaction`` get their sessions from the factory
returned by ``get_session_factory``.
"""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from worksync.core.config import settings

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_timeout=settings.DB_POOL_TIMEOUT_SECONDS,
    pool_pre_ping=True,  # Verify connections before use
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency — the factory used for explicit atomic scopes."""
    return async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency — one session per request, committed on success."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
