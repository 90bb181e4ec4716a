"""Stale attempt reaper - fails attempts that never got a provider answer.

An attempt is only abandoned when the process running it died before the
provider responded. Without this job its project would stay ``building``
forever and reject every later redeploy.
"""

import logging
from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from shipyard.config import get_settings
from shipyard.errors import StoreError
from shipyard.services.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


async def reap_stale_attempts(orchestrator: Orchestrator) -> None:
    """Expire attempts older than the configured threshold.

    This function is called periodically by the scheduler.
    """
    settings = get_settings()
    logger.debug("Running stale attempt check...")

    try:
        repaired = await orchestrator.expire_stale_attempts(
            timedelta(minutes=settings.stale_attempt_minutes)
        )
    except StoreError as e:
        logger.error(f"Stale attempt check failed: {e}")
        return

    if repaired:
        logger.info(f"Stale attempt check repaired {repaired} record(s)")


def start_scheduler(orchestrator: Orchestrator) -> AsyncIOScheduler:
    """Start the stale attempt scheduler."""
    global _scheduler

    if _scheduler is not None:
        return _scheduler

    settings = get_settings()
    interval = settings.reaper_check_interval

    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        reap_stale_attempts,
        "interval",
        seconds=interval,
        args=[orchestrator],
        id="stale_attempt_check",
        name="Expire stale deployment attempts",
        replace_existing=True,
    )
    _scheduler.start()

    logger.info(f"Stale attempt scheduler started (interval: {interval}s)")
    return _scheduler


def stop_scheduler() -> None:
    """Stop the stale attempt scheduler."""
    global _scheduler

    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Stale attempt scheduler stopped")
