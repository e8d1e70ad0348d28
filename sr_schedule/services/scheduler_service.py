import logging
from datetime import datetime
from typing import Any, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger


logger = logging.getLogger(__name__)

REFRESH_JOB_ID = 'program_refresh'
CHANNELS_JOB_ID = 'channel_list_refresh'


class RefreshScheduler:
    """Periodic refresh timer and channel list schedule"""

    def __init__(self, interval_seconds: int, *, misfire_grace_sec: int = 30):
        self.interval_seconds = interval_seconds
        self.misfire_grace_sec = misfire_grace_sec
        self.scheduler: AsyncIOScheduler | None = None
        self.armed_generation: int | None = None

    @property
    def running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def start(self) -> None:
        """Start the scheduler, armed jobs begin counting from here"""
        if self.running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = self.scheduler or AsyncIOScheduler(timezone='UTC')
        self.scheduler.start()
        logger.info("Scheduler started (refresh interval: %ss)", self.interval_seconds)

    def arm(self, generation: int, callback: Callable[[int], Any]) -> None:
        """Arm the periodic refresh timer, replacing any previous one"""
        scheduler = self._ensure_scheduler()
        # replace_existing does not dedupe jobs added before start()
        self._remove_refresh_job()
        scheduler.add_job(
            callback,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            args=[generation],
            id=REFRESH_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_sec
        )
        self.armed_generation = generation
        logger.debug("Refresh timer armed (generation %s)", generation)

    def disarm(self) -> None:
        """Remove the periodic refresh timer if present"""
        if self._remove_refresh_job():
            logger.debug("Refresh timer disarmed (generation %s)", self.armed_generation)
        self.armed_generation = None

    def schedule_channel_refresh(self, job: Callable[[], Any], cron: str) -> None:
        """Schedule periodic channel list reloads"""
        try:
            trigger = CronTrigger.from_crontab(cron)
        except (ValueError, KeyError) as exc:
            logger.error("Invalid cron expression '%s': %s", cron, exc)
            raise

        self._ensure_scheduler().add_job(
            job,
            trigger=trigger,
            id=CHANNELS_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_sec
        )
        logger.info("Channel list refresh scheduled: %s", cron)

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
        if self.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self.scheduler = None
        self.armed_generation = None

    def get_next_run_time(self) -> datetime | None:
        """Get next scheduled refresh time"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(REFRESH_JOB_ID)
        # Pending jobs (scheduler not started) have no next_run_time yet
        return getattr(job, 'next_run_time', None) if job else None

    def _remove_refresh_job(self) -> bool:
        if self.scheduler is None:
            return False
        try:
            self.scheduler.remove_job(REFRESH_JOB_ID)
            return True
        except JobLookupError:
            return False

    def _ensure_scheduler(self) -> AsyncIOScheduler:
        if self.scheduler is None:
            self.scheduler = AsyncIOScheduler(timezone='UTC')
        return self.scheduler
