"""
Ledger Database Layer
Async SQLModel engine and session factory for profiles, principles and coaching sessions.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from ledger.config import settings

logger = logging.getLogger("ledger.db")


def _get_engine_kwargs() -> dict:
    """Get database-specific engine arguments."""
    if "sqlite" in settings.db_url:
        # aiosqlite connections are bound to the loop that opened them
        return {"connect_args": {"check_same_thread": False}, "poolclass": NullPool}
    return {"pool_pre_ping": True}


engine = create_async_engine(
    settings.db_url,
    echo=settings.env == "dev",
    future=True,
    **_get_engine_kwargs(),
)

async_session = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def create_db_and_tables():
    """Initialize database schema. Idempotent."""
    # register table metadata
    import ledger.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("database_tables_created", extra={"db_url": settings.db_url})


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session that is closed after the request."""
    async with async_session() as session:
        yield session


async def verify_database_connection() -> dict:
    status = {"database": False, "errors": []}
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        status["database"] = True
    except Exception as e:
        logger.warning("database_unreachable", extra={"error": str(e)})
        status["errors"].append(str(e))
    return status
