"""Database connection and session management"""

import logging
import os
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from nannygold.config import settings

logger = logging.getLogger(__name__)

engine = create_async_engine(
    str(settings.database_url),
    echo=settings.app_debug,
    pool_pre_ping=True,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def init_db() -> None:
    """Create tables when a real database is configured"""
    # Import models to register them with Base.metadata
    from nannygold.db import models  # noqa: F401

    db_url = str(settings.database_url)
    if "user:password@localhost" in db_url and "DATABASE_URL" not in os.environ:
        logger.warning("Database not configured - skipping table creation")
        return

    logger.info("Connecting to database...")
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}", exc_info=True)
        raise
    logger.info("Database connection established successfully")


async def close_db() -> None:
    """Close database connections"""
    await engine.dispose()
    logger.info("Database connections closed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; services commit their own units of work"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
