"""
Database session management for async SQLAlchemy operations.

Every store call opens its own short session through get_session(). Unique
violations surface as PersistenceConflict so the dedup engine can retry the
losing side of a race.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlmodel import SQLModel

from ..common.errors import PersistenceConflict
from ..config.settings import settings
from .models import Company, CompanyEnrichment, FundingRound, FundingSource

logger = logging.getLogger(__name__)

# Headroom over max_parallel_sources for the scheduler and CLI status reads
POOL_HEADROOM = 4

SOURCER_TABLES = [
    Company.__table__,
    FundingRound.__table__,
    FundingSource.__table__,
    CompanyEnrichment.__table__,
]


engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=settings.max_parallel_sources + POOL_HEADROOM,
    max_overflow=settings.max_parallel_sources,
    pool_pre_ping=True,
    pool_recycle=3600,
    pool_timeout=30,
    connect_args={
        "command_timeout": 30,  # asyncpg, per query
        "server_settings": {
            "statement_timeout": "30000",  # ms
        },
    },
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db():
    """Create the sourcer tables if they don't exist (alembic owns real migrations)."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all, tables=SOURCER_TABLES)


async def close_db():
    await engine.dispose()


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Async session that commits on success and rolls back on error.

    No asyncio.wait_for() around commit(): cancelling a commit mid-flight can
    leave partial writes. PostgreSQL statement_timeout bounds stuck queries.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except IntegrityError as e:
            await session.rollback()
            logger.warning(f"Unique constraint conflict, rolled back: {e.orig}")
            raise PersistenceConflict(str(e.orig)) from e
        except Exception as e:
            logger.error(f"Database session error, rolling back: {e}")
            await session.rollback()
            raise
