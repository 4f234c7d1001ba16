"""
Database connection and session management

Provides the async SQLModel engine for the usage ledger.
Configured via DATABASE_URL environment variable; defaults to a local
SQLite file for development.
"""

import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel


# Database configuration
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./storage/photoledger.db")
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))
DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"

# Convert postgresql:// to postgresql+asyncpg:// for async support
if DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)
elif DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+asyncpg://", 1)


def build_engine(url: str = DATABASE_URL) -> AsyncEngine:
    """
    Create an async engine for ``url``.

    Pool sizing only applies to server databases; SQLite uses the
    driver's default pool.
    """
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=DB_ECHO)

    if os.getenv("USE_PGBOUNCER", "false").lower() == "true":
        return create_async_engine(url, echo=DB_ECHO, poolclass=NullPool, pool_pre_ping=True)

    return create_async_engine(
        url,
        echo=DB_ECHO,
        pool_size=DB_POOL_SIZE,
        max_overflow=DB_MAX_OVERFLOW,
        pool_pre_ping=True,  # Verify connections before using
    )


engine = build_engine()

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


def get_session_factory() -> async_sessionmaker:
    """
    Dependency returning the session factory used by the ledger and routes.

    Tests override this with a factory bound to an in-memory database.
    """
    return async_session_maker


@asynccontextmanager
async def get_db_session(factory: async_sessionmaker = None) -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for getting database session outside of FastAPI

    Usage:
        async with get_db_session() as session:
            account = await session.get(Account, account_id)
    """
    async with (factory or async_session_maker)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(target: AsyncEngine = None):
    """
    Initialize database tables
    Should only be called once during app startup
    """
    target = target or engine
    url = make_url(str(target.url))
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    # Register table metadata before create_all
    import core.models_sql  # noqa: F401

    async with target.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def close_db():
    """
    Close database connections
    Should be called during app shutdown
    """
    await engine.dispose()
