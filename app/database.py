"""Database engine, session factory and declarative base."""

import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all models."""


def _enable_sqlite_locking(engine: AsyncEngine) -> None:
    """Make SQLite take the write lock at BEGIN.

    pysqlite defers BEGIN until the first write, so a read-then-write
    transaction would not serialise with a concurrent one. Emitting
    BEGIN IMMEDIATE gives the same one-writer-at-a-time behaviour that
    SELECT ... FOR UPDATE gives on PostgreSQL.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(url: str | None = None, **kwargs) -> AsyncEngine:
    """Create an async engine for the configured (or given) database URL."""
    url = url or settings.database_url
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"timeout": 30})
        engine = create_async_engine(url, echo=settings.debug, **kwargs)
        _enable_sqlite_locking(engine)
        return engine

    return create_async_engine(
        url,
        echo=settings.debug,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        **kwargs,
    )


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = create_engine()
async_session_maker = create_session_factory(engine)


async def init_db() -> None:
    """Register model-level guards and, outside production, create tables."""
    from app.core.immutability import register_immutability_enforcement
    import app.models  # noqa: F401

    register_immutability_enforcement()

    if settings.environment != "production":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured")


async def close_db() -> None:
    await engine.dispose()
    logger.info("Database connections closed")
