"""
Scheduled synchronization
Runs the incremental sync on a cron schedule and seeds an empty store at startup
"""
import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from cvemirror.core.storage import CVEStore
from cvemirror.core.sync_engine import SyncEngine
from cvemirror.utils.error_handler import ErrorContext, handle_error

logger = logging.getLogger(__name__)

JOB_ID = "incremental-sync"


class SyncScheduler:
    """Cron-triggered incremental sync; one run at a time, failures logged and dropped"""

    def __init__(self, engine: SyncEngine, cron: str = "30 0 * * *",
                 hours: int = 24, timezone: str = "UTC"):
        self.engine = engine
        self.cron = cron
        self.hours = hours
        self.timezone = timezone
        self._scheduler: Optional[BackgroundScheduler] = None

    def run_once(self) -> Optional[int]:
        """Job body; returns the processed count, or None when the run failed"""
        logger.info("Running scheduled incremental sync...")
        try:
            return self.engine.incremental_sync(self.hours)
        except Exception as e:
            handle_error(e, ErrorContext(operation="scheduled_incremental_sync", component="scheduler"))
            logger.error(f"Scheduled sync failed: {e}")
            return None

    def start(self) -> None:
        if self._scheduler is not None:
            return
        self._scheduler = BackgroundScheduler(timezone=self.timezone)
        self._scheduler.add_job(
            self.run_once,
            CronTrigger.from_crontab(self.cron, timezone=self.timezone),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(f"Scheduler started (cron '{self.cron}', {self.timezone})")

    def stop(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Scheduler stopped")

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def next_run_time(self) -> Optional[str]:
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(JOB_ID)
        if job is None or job.next_run_time is None:
            return None
        return job.next_run_time.isoformat()


def seed_if_empty(engine: SyncEngine, store: CVEStore, pages: int = 5) -> int:
    """Run a bounded full sync when the store holds no records yet"""
    count = store.count()
    if count == 0:
        logger.info(f"No CVEs found, running initial seed ({pages} pages)...")
        return engine.full_sync(pages)
    logger.info(f"Database has {count} CVEs")
    return 0
