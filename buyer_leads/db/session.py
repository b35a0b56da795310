from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, AsyncIterator, Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from buyer_leads.core.config import settings
from buyer_leads.core.exceptions import DatabaseError
from buyer_leads.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)

# Created lazily so importing the app never opens a connection
engine: Optional[AsyncEngine] = None
AsyncSessionLocal: Optional[async_sessionmaker[AsyncSession]] = None


def _uses_postgres() -> bool:
    return settings.database_url.startswith("postgresql")


def _engine_options() -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.debug}
    if settings.is_testing or not _uses_postgres():
        options["poolclass"] = NullPool
        return options

    options.update(
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout,
        pool_recycle=settings.database_pool_recycle,
        pool_pre_ping=True,
        connect_args={"server_settings": {"application_name": "buyer_leads"}},
    )
    return options


def create_database_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it and its session factory on first use."""
    global engine, AsyncSessionLocal

    if engine is None:
        engine = create_async_engine(settings.database_url, **_engine_options())
        AsyncSessionLocal = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("database.engine.created", postgres=_uses_postgres(), testing=settings.is_testing)

    return engine


async def dispose_engine() -> None:
    global engine, AsyncSessionLocal

    if engine is not None:
        await engine.dispose()
        logger.info("database.engine.disposed")
    engine = None
    AsyncSessionLocal = None


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Session with the statement timeout applied; driver errors surface as :class:`DatabaseError`."""
    create_database_engine()

    async with AsyncSessionLocal() as session:
        try:
            if _uses_postgres():
                timeout_ms = settings.database_statement_timeout * 1000
                await session.execute(text(f"SET statement_timeout = {timeout_ms}"))
            yield session
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error("database.session_error", error=str(e))
            raise DatabaseError(message="Database session error") from e


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency wrapping :func:`session_scope`."""
    async with session_scope() as session:
        yield session


async def init_models() -> None:
    """Create all tables (development and CLI bootstrap)."""
    import buyer_leads.models  # noqa: F401  registers tables on Base.metadata
    from buyer_leads.db.base import Base

    async with create_database_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database.tables_created")


async def health_check() -> Dict[str, Any]:
    checked_at = datetime.now(timezone.utc).isoformat()
    try:
        async with create_database_engine().connect() as conn:
            value = (await conn.execute(text("SELECT 1"))).scalar()
    except Exception as e:
        logger.error("database.health_check_failed", error=str(e))
        return {"status": "unhealthy", "error": str(e), "timestamp": checked_at}

    return {"status": "healthy" if value == 1 else "unhealthy", "timestamp": checked_at}
