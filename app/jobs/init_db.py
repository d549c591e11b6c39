"""
Database migration script for the WhatsApp Notification Service
Run this to initialize the database tables:

    python -m app.jobs.init_db
"""
import asyncio

import structlog

from app.core.logging import setup_logging
from app.database.database import init_db, close_db

logger = structlog.get_logger(__name__)


async def create_tables():
    """Create all tables"""
    logger.info("Creating database tables...")
    try:
        await init_db()
    finally:
        await close_db()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(create_tables())
