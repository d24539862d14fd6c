"""
APScheduler setup for the periodic dispatch job.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.config.settings import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

DISPATCH_JOB_ID = "process_scheduled_messages"

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler instance."""
    global scheduler

    if scheduler is None:
        scheduler = AsyncIOScheduler(timezone="UTC")

    return scheduler


async def start_scheduler() -> None:
    """Start the scheduler and register the dispatch job."""
    sched = get_scheduler()

    sched.add_job(
        run_dispatch_job,
        trigger=IntervalTrigger(seconds=settings.dispatch_interval_seconds),
        id=DISPATCH_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info(f"Scheduled dispatch job every {settings.dispatch_interval_seconds}s")

    if not sched.running:
        sched.start()
        logger.info("Scheduler started")


async def stop_scheduler() -> None:
    """Stop the scheduler gracefully."""
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped")


async def run_dispatch_job() -> None:
    """
    Run one dispatch pass.

    This function is called by the scheduler on every interval tick.
    """
    from app.usecases.dispatch_service import process_scheduled_messages

    try:
        summary = await process_scheduled_messages()
        logger.info(f"Dispatch job finished: {summary.model_dump()}")
    except Exception as e:
        logger.exception(f"Dispatch job failed: {e}")
