"""Database engine and session management.

Quote/order records, OAuth credentials and the audit trail all live in the
same database. Background-style callers (the credential manager, the expiry
sweep trigger) open their own sessions from ``async_session``; request
handlers get one per request through ``get_session``.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from backoffice.config import settings
from backoffice.models.records import Base


def build_engine(url: str) -> AsyncEngine:
    """Create an engine; in-memory SQLite shares one connection across sessions."""
    if url.startswith("sqlite") and ":memory:" in url:
        return create_async_engine(url, echo=False, poolclass=StaticPool)
    return create_async_engine(url, echo=False)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url)
async_session = build_session_factory(engine)


async def init_db(bind: AsyncEngine = engine):
    """Create all tables. Safe to call multiple times (CREATE IF NOT EXISTS)."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session
