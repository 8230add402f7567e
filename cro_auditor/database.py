"""
Database engines and sessions.

The API shares one pooled engine. Celery tasks each run in a fresh event
loop and get a short-lived engine of their own through task_session().
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cro_auditor.config import settings
from cro_auditor.models.base import Base


def async_database_url(url: str) -> str:
    """Point a plain postgres URL at the asyncpg driver."""
    for prefix in ("postgresql://", "postgres://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    # Workflow phases keep using ORM objects after each commit
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


DATABASE_URL = async_database_url(settings.DATABASE_URL)

engine = create_async_engine(
    DATABASE_URL,
    echo=settings.ENVIRONMENT == "development",
    pool_pre_ping=True,
    pool_size=10,
    max_overflow=20,
)

SessionLocal = make_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; commits when the endpoint returns normally."""
    async with SessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def task_session() -> AsyncGenerator[AsyncSession, None]:
    """Session on a throwaway engine bound to the calling task's event loop."""
    task_engine = create_async_engine(DATABASE_URL, pool_pre_ping=True, pool_size=2, max_overflow=0)
    try:
        async with make_session_factory(task_engine)() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
    finally:
        await task_engine.dispose()


async def init_db() -> None:
    """Create any missing tables."""
    # Importing the package registers every mapped class
    import cro_auditor.models

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
