#!/usr/bin/env python3
"""Create the booking core tables against the configured database"""

import asyncio
import logging
import sys

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine

from nannygold.config import settings
from nannygold.db import models  # noqa: F401
from nannygold.db.database import Base

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def create_tables() -> bool:
    """Create database tables"""
    logger.info("Starting table creation...")
    logger.info(f"Database URL (masked): {str(settings.database_url)[:30]}...")

    engine = create_async_engine(str(settings.database_url))
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            logger.info("Database connection successful")
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Created {len(Base.metadata.tables)} tables")
        return True
    except SQLAlchemyError as e:
        logger.error(f"Failed to create tables: {e}")
        return False
    finally:
        await engine.dispose()


if __name__ == "__main__":
    success = asyncio.run(create_tables())
    sys.exit(0 if success else 1)
