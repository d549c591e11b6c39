"""
Run one queue sweep outside the web process, e.g. from cron every
``whatsapp_delay_minutes`` minutes:

    python -m app.jobs.process_queue
"""
import asyncio
import sys

import structlog

from app.core.exceptions import NotificationServiceError
from app.core.logging import setup_logging
from app.database.database import AsyncSessionLocal, close_db
from app.services.config_store import get_config_loader
from app.services.sweeper import QueueSweeper
from app.services.webhook_client import WebhookClient

logger = structlog.get_logger(__name__)


async def run_sweep() -> int:
    """Returns the process exit code"""
    try:
        async with AsyncSessionLocal() as session:
            sweeper = QueueSweeper(session, WebhookClient(), get_config_loader())
            summary = await sweeper.process_pending_queue()
    except NotificationServiceError as e:
        logger.error("Queue sweep rejected", error=e.message)
        return 1
    finally:
        await close_db()

    logger.info(
        summary.message,
        processed=summary.processed,
        errors=summary.errors,
        skipped=summary.skipped,
        total=summary.total
    )
    return 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(run_sweep()))
