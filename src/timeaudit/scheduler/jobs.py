"""
APScheduler jobs for background delivery retries.

`retry_pending` runs once as soon as the scheduler starts (the eager startup
pass) and then every `retry_interval_seconds`. `queue_cleanup` ages out
confirmed records and drops exhausted ones.

The scheduler belongs to a SyncLifecycle; stopping the lifecycle shuts the
scheduler down so no delivery attempts outlive the session. In-flight inserts
are not cancelled; their outcome is applied when they finish.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from timeaudit.config import get_settings

logger = logging.getLogger(__name__)

RETRY_JOB_ID = "retry_pending"
CLEANUP_JOB_ID = "queue_cleanup"


def build_scheduler(synchronizer) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        synchronizer: ActivitySynchronizer whose queue the jobs work on.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _retry_pending,
        trigger="interval",
        seconds=settings.retry_interval_seconds,
        id=RETRY_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        next_run_time=datetime.now(timezone.utc),
        kwargs={"synchronizer": synchronizer},
    )
    scheduler.add_job(
        _cleanup_queue,
        trigger="interval",
        minutes=settings.cleanup_interval_minutes,
        id=CLEANUP_JOB_ID,
        replace_existing=True,
        kwargs={"synchronizer": synchronizer},
    )

    return scheduler


async def _retry_pending(synchronizer) -> None:
    """
    Timer job: re-attempt every pending / retryable record.

    Catches everything so the scheduler stays alive.
    """
    try:
        await synchronizer.sync_pending()
    except Exception as exc:
        logger.error("Retry pass failed: %s", exc)


async def _cleanup_queue(synchronizer) -> None:
    try:
        synchronizer.cleanup()
    except Exception as exc:
        logger.error("Queue cleanup failed: %s", exc)


class SyncLifecycle:
    """
    Owns the retry scheduler for one session.

    Usage:
        lifecycle = SyncLifecycle(synchronizer)
        lifecycle.start()     # inside a running event loop
        ...
        lifecycle.stop()
    """

    def __init__(self, synchronizer):
        self.synchronizer = synchronizer
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        if self.running:
            return
        self._scheduler = build_scheduler(self.synchronizer)
        self._scheduler.start()
        logger.info(
            "Retry scheduler started (every %ds)",
            get_settings().retry_interval_seconds,
        )

    def stop(self) -> None:
        """Cancel all timers. Safe to call more than once."""
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.remove_all_jobs()
            self._scheduler.shutdown(wait=False)
            logger.info("Retry scheduler stopped")
        self._scheduler = None

    async def __aenter__(self) -> "SyncLifecycle":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.stop()
