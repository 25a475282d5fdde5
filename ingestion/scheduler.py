import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.config import Settings, settings as default_settings
from core.database import async_session_maker
from core.exceptions import SyncAlreadyRunningError
from ingestion.notifier import StatusNotifier
from ingestion.runner import SyncRunner

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Interval trigger for ``SyncRunner.sync_from_terviseamet(force=False)``."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        session_maker: Optional[async_sessionmaker] = None,
        notifier: Optional[StatusNotifier] = None,
    ):
        self.config = config or default_settings
        self.scheduler = AsyncIOScheduler()
        self.SessionLocal = session_maker or async_session_maker
        self.notifier = notifier

    async def run_sync_job(self):
        """Job to run the Terviseamet sync"""
        logger.info("Scheduler: Starting Terviseamet sync job")
        async with self.SessionLocal() as session:
            try:
                runner = SyncRunner(session, config=self.config, notifier=self.notifier)
                await runner.sync_from_terviseamet(force=False)
            except SyncAlreadyRunningError:
                logger.info("Scheduler: Previous sync still running, skipping this tick")
            except Exception as e:
                logger.exception(f"Scheduler: Sync job failed - {e}")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_sync_job,
            trigger=IntervalTrigger(minutes=self.config.SYNC_INTERVAL_MINUTES),
            id="terviseamet_sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(f"Sync scheduler started (every {self.config.SYNC_INTERVAL_MINUTES} min)")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Sync scheduler stopped")
