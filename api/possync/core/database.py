from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy import Engine, create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from possync.core.config import settings


class Base(DeclarativeBase):
    pass


# ─── Async (FastAPI) ──────────────────────────

@lru_cache
def _async_sessionmaker() -> async_sessionmaker[AsyncSession]:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    return async_sessionmaker(engine, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with _async_sessionmaker()() as session:
        yield session


# ─── Sync (Celery tasks, scripts) ─────────────

@lru_cache
def get_sync_engine() -> Engine:
    return create_engine(settings.database_url_sync, pool_pre_ping=True)


def sync_session_factory() -> sessionmaker[Session]:
    """Session factory bound to the sync engine. Sessions don't autoflush."""
    return sessionmaker(bind=get_sync_engine(), autoflush=False, expire_on_commit=False)
