# ==== DATABASE CONNECTION AND SESSION MANAGEMENT ==== #

"""
Database connection and session management for Kundedata.

Async SQLAlchemy engine setup for PostgreSQL (asyncpg, with PgBouncer
compatibility for Supabase poolers) and SQLite (aiosqlite, used by the test
suite), plus session helpers for request handlers and background work.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

import asyncpg
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    async_sessionmaker,
    AsyncSession,
    AsyncEngine
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool, StaticPool

from kundedata.settings import settings
from kundedata.observability.metrics import db_connections_active


# ==== SQLALCHEMY CONFIGURATION ==== #

# SQLAlchemy base for model definitions
Base = declarative_base()

# Global engine and session factory instances
engine: AsyncEngine | None = None
SessionLocal: async_sessionmaker[AsyncSession] | None = None


class _UniqueStmtConnection(asyncpg.Connection):
    """asyncpg Connection with UUID-based prepared-statement IDs."""

    def _get_unique_id(self, prefix: str) -> str:
        return f"__asyncpg_{prefix}_{uuid4().hex}__"


def normalize_database_url(db_url: str) -> str:
    """Force the async driver for the configured database URL."""
    if db_url.startswith("sqlite://"):
        return db_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)
    if db_url.startswith("postgresql") and not db_url.startswith("postgresql+asyncpg://"):
        db_url = db_url.replace("postgresql+psycopg://", "postgresql+asyncpg://")
        db_url = db_url.replace("postgresql://", "postgresql+asyncpg://")

    # asyncpg spells the SSL query parameter differently
    if "sslmode=require" in db_url:
        db_url = db_url.replace("sslmode=require", "ssl=require")
    return db_url


# ==== DATABASE INITIALIZATION ==== #

def init_database(database_url: str | None = None) -> None:
    """
    Initialize database engine and session factory.

    Args:
        database_url: Override for ``settings.DATABASE_URL``
    """
    global engine, SessionLocal

    if engine is not None:
        return

    db_url = normalize_database_url(database_url or settings.DATABASE_URL)

    if db_url.startswith("sqlite"):
        # In-memory databases must share one connection across sessions
        engine = create_async_engine(
            db_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            # ON DELETE CASCADE is off by default in SQLite
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    else:
        is_pooler = "pooler" in db_url
        engine = create_async_engine(
            db_url,
            echo=False,
            # PgBouncer already pools connections
            poolclass=NullPool if is_pooler else None,
            pool_pre_ping=not is_pooler,
            connect_args={
                "statement_cache_size": 0,
                "connection_class": _UniqueStmtConnection,
                "server_settings": {
                    "application_name": settings.SERVICE_NAME,
                    "timezone": "UTC"
                }
            },
        )

    SessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_all() -> None:
    """Create every table from the ORM metadata (tests and ``init-db``)."""
    from kundedata.storage import models  # noqa: F401  registers the tables

    if engine is None:
        init_database()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session with automatic commit or rollback.

    Used by background automation runs, the cron services and Prefect flows.

    Yields:
        AsyncSession: Database session
    """
    if SessionLocal is None:
        init_database()

    async with SessionLocal() as session:
        db_connections_active.inc()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            db_connections_active.dec()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions.

    Yields:
        AsyncSession: Database session for request handling
    """
    async with get_session() as session:
        yield session


async def check_database() -> bool:
    """Run a trivial query to verify connectivity."""
    from sqlalchemy import text

    async with get_session() as session:
        await session.execute(text("SELECT 1"))
    return True


async def close_database() -> None:
    """Close database connections on shutdown."""
    global engine, SessionLocal
    if engine is not None:
        await engine.dispose()
        engine = None
        SessionLocal = None
