"""APScheduler job definitions."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ncc_monitor import metrics
from ncc_monitor.config import Settings
from ncc_monitor.monitor import MonitorService

logger = logging.getLogger(__name__)


async def run_automatic_sweep(monitor: MonitorService, search_type: str) -> None:
    """Scheduled entry point for the automated sweep."""
    try:
        await monitor.sweep(search_type)
    except Exception as e:
        metrics.record_scheduler_run("auto_scan", False)
        logger.error(f"Automatic sweep failed: {e}", exc_info=True)
        return
    metrics.record_scheduler_run("auto_scan", True)


def setup_scheduler(monitor: MonitorService, settings: Settings) -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    Scheduling overview:
    - Automatic sweep of every active serial at settings.auto_scan_interval_minutes

    Returns:
        Configured scheduler instance
    """
    scheduler = AsyncIOScheduler()
    interval = max(1, int(settings.auto_scan_interval_minutes))

    if settings.auto_scan_enabled:
        scheduler.add_job(
            run_automatic_sweep,
            IntervalTrigger(minutes=interval),
            args=[monitor, settings.auto_scan_search_type],
            id="auto_scan",
            name="Scan all active serials",
            max_instances=1,  # Prevent overlapping runs
            coalesce=True,
            misfire_grace_time=600,
            replace_existing=True,
        )
        logger.info(
            "Scheduler configured: automatic sweep every %d minutes (search_type=%s)",
            interval,
            settings.auto_scan_search_type,
        )
    else:
        logger.info("Scheduler configured: automatic sweep disabled")

    return scheduler
