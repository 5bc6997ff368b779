"""
Database Connection and Session Management

The API shares one engine; every Celery task run builds its own, bound to
the event loop that task created.
"""
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from rutapay.core.config import settings


def _create_engine(**pool_options: Any) -> AsyncEngine:
    """Engine for DATABASE_URL; pool sizing is ignored for SQLite, which has no pool to size"""
    if settings.DATABASE_URL.startswith("sqlite"):
        pool_options = {}
    return create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
        pool_pre_ping=True,
        **pool_options,
    )


def _session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # services keep using objects after commit (responses, outbox delivery)
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


engine = _create_engine()

AsyncSessionLocal = _session_factory(engine)

Base = declarative_base()


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one session per request"""
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def get_task_session() -> AsyncIterator[AsyncSession]:
    """
    Session for one Celery task run.

    The module-level engine is attached to whichever loop first used it, so a
    task running on its own loop gets a private engine that is disposed when
    the task finishes.
    """
    task_engine = _create_engine(pool_size=5, max_overflow=10)
    try:
        async with _session_factory(task_engine)() as session:
            yield session
    finally:
        await task_engine.dispose()
