"""Scheduled full syncs."""

from __future__ import annotations

import logging
from datetime import datetime

from .config import AppConfig
from .sync import ReceiptSync

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Runs :meth:`ReceiptSync.sync_all` on a cron schedule.

    Uses APScheduler for cron-based scheduling.
    """

    def __init__(self, config: AppConfig, sync: ReceiptSync) -> None:
        """Initialize scheduler.

        Args:
            config: AppConfig instance.
            sync: The orchestrator whose full sync is scheduled.

        Raises:
            ImportError: If apscheduler is not installed.
        """
        try:
            from apscheduler.schedulers.asyncio import AsyncIOScheduler
            from apscheduler.triggers.cron import CronTrigger
        except ImportError:
            raise ImportError("apscheduler is required: pip install 'apscheduler<4'")

        self._config = config
        self._sync = sync
        self._scheduler = AsyncIOScheduler()
        self._CronTrigger = CronTrigger

    def setup_jobs(self) -> None:
        """Register the full sync job from ``sync.schedule``.

        Raises:
            ValueError: If the schedule is not a valid 5-field cron expression.
        """
        schedule = self._config.sync.schedule
        try:
            trigger = self._CronTrigger.from_crontab(schedule)
        except ValueError as e:
            raise ValueError(f"Invalid cron expression {schedule!r}: {e}") from e

        self._scheduler.add_job(
            self._job_full_sync,
            trigger=trigger,
            id="full_sync",
            name="Full receipt sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("registered full sync job: %s", schedule)

    def start(self) -> None:
        self.setup_jobs()
        self._scheduler.start()
        logger.info("scheduler started")

    def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("scheduler stopped")

    def next_runs(self) -> dict[str, datetime | None]:
        """Map each job id to its next fire time (``None`` while paused or pending)."""
        return {
            job.id: getattr(job, "next_run_time", None)
            for job in self._scheduler.get_jobs()
        }

    async def _job_full_sync(self) -> None:
        logger.info("running scheduled full sync...")
        try:
            done = await self._sync.sync_all()
            logger.info("scheduled full sync processed %d files", len(done))
        except Exception:
            logger.exception("scheduled full sync failed")
