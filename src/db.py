"""
Supermarket Monitor — Database Setup

Usage:
    engine, session_factory = await create_db_engine()
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from src.config import settings

logger = structlog.get_logger(__name__)


async def create_db_engine(
    database_url: str | None = None,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """
    Create SQLAlchemy async engine and session factory.

    The DATABASE_URL is read from settings unless given. SQLite (aiosqlite)
    is the default; pool sizing only applies to server databases.

    Returns:
        (engine, session_factory) tuple.
    """
    url = database_url or settings.DATABASE_URL
    logger.info("database_engine_initializing", database_url=url)

    kwargs: dict[str, Any] = {"echo": False}
    if not url.startswith("sqlite"):
        kwargs.update(pool_size=5, max_overflow=10, pool_pre_ping=True)

    engine = create_async_engine(url, **kwargs)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info("database_engine_ready")
    return engine, session_factory
