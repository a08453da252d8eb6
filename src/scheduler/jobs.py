"""
Background job definitions using APScheduler.

Jobs:
- Invoice rendering (drains the invoices queue)
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.config import settings
from src.models import utc_now
from src.services.invoice_worker import invoice_worker_iteration

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()

INVOICE_JOB_ID = "invoice_worker"


async def invoice_job():
    """Render pending invoices."""
    logger.debug("Running invoice job")
    try:
        processed = await invoice_worker_iteration()
        if processed:
            logger.info(f"Invoice job: processed {processed} invoices")
    except Exception as e:
        logger.error(f"Invoice job error: {e}")


def setup_scheduler():
    """
    Configure and add all scheduled jobs.

    Called during application startup.
    """
    scheduler.add_job(
        invoice_job,
        trigger=IntervalTrigger(seconds=settings.invoice_worker_interval_seconds),
        id=INVOICE_JOB_ID,
        name="Render queued invoices",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    logger.info("Scheduler configured with jobs")


def wake_invoice_job() -> None:
    """Run the invoice job now instead of waiting for the next tick."""
    if not scheduler.running:
        return
    try:
        scheduler.modify_job(INVOICE_JOB_ID, next_run_time=utc_now())
    except Exception as e:
        logger.warning(f"Could not wake invoice job: {e}")
