"""Background job scheduler.

APScheduler-based interval job that evicts finished alerts once their
retention window has passed.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from wygc.config import settings
from wygc.dispatcher import get_engine
from wygc.logging_config import get_logger

logger = get_logger(__name__)

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None


async def evict_finished_alerts() -> int:
    """Drop finished alerts past their retention window from memory."""
    try:
        evicted = get_engine().evict_expired()
    except Exception:
        logger.exception("Alert eviction failed")
        return 0

    logger.debug("Alert eviction run completed", evicted=evicted)
    return evicted


def start_scheduler() -> AsyncIOScheduler:
    """Start the background job scheduler.

    Returns:
        The started scheduler instance
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already running")
        return scheduler

    scheduler = AsyncIOScheduler()

    if settings.eviction_enabled:
        scheduler.add_job(
            evict_finished_alerts,
            trigger=IntervalTrigger(seconds=settings.eviction_interval_seconds),
            id="alert_eviction",
            name="Finished Alert Eviction",
            replace_existing=True,
            max_instances=1,
        )
        logger.info(
            "Scheduled alert eviction job",
            interval_seconds=settings.eviction_interval_seconds,
        )

    scheduler.start()
    return scheduler


def stop_scheduler() -> None:
    """Stop the background job scheduler."""
    global scheduler

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("Background scheduler stopped")


def get_scheduler() -> AsyncIOScheduler | None:
    """Get the current scheduler instance, or None if not started."""
    return scheduler
