"""ADLENS: Scheduler Jobs.

APScheduler daily job that sweeps expired report cache entries.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.api.dependencies import get_cache
from app.config import settings
from app.core.logging import get_logger
from app.storage.report_cache import SqlReportCache

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def cache_cleanup_job(cache: SqlReportCache = None):
    """Delete expired cached reports."""
    logger.info("Scheduled cache cleanup starting...")
    try:
        removed = (cache or get_cache()).cleanup_expired()
        logger.info(f"Scheduled cache cleanup complete. Removed {removed} entries")
    except Exception as e:
        logger.error(f"Scheduled cache cleanup failed: {e}")


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        cache_cleanup_job,
        "cron",
        hour=settings.cache_cleanup_hour,
        minute=0,
        id="cache_cleanup",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.start()
    logger.info(f"Scheduler started. Cache cleanup at {settings.cache_cleanup_hour}:00 UTC")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
