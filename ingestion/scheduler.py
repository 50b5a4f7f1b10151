import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ingestion.runner import SyncRunner
from schemas.sync import SyncResult

logger = logging.getLogger(__name__)

JOB_ID = "zabbix_sync"


class SyncScheduler:
    """Runs a sync pass over every configured table on a fixed interval"""

    def __init__(self, runner: SyncRunner, interval_seconds: int = 30, scheduler: Optional[AsyncIOScheduler] = None):
        self.runner = runner
        self.interval_seconds = interval_seconds
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self.last_results: List[SyncResult] = []
        self._pass_lock = asyncio.Lock()
        self._stopping = False

    async def run_sync_job(self) -> List[SyncResult]:
        """Job to run one sync pass"""
        async with self._pass_lock:
            if self._stopping:
                logger.info("Scheduler: Stopping, sync pass not started")
                return []

            logger.info("Scheduler: Starting sync pass")
            try:
                self.last_results = await self.runner.run_all()
            except Exception as e:
                logger.exception(f"Scheduler: Sync pass failed - {e}")
                self.last_results = []
            return self.last_results

    def start(self):
        """Start the scheduler; the first pass runs immediately"""
        self.scheduler.add_job(
            self.run_sync_job,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,  # Passes never overlap
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        self.scheduler.start()
        logger.info(f"Sync scheduler started, interval {self.interval_seconds}s")

    async def stop(self):
        """
        Stop scheduling new passes and wait for the pass in progress.

        The runner may be closed once this returns.
        """
        self._stopping = True
        if self.scheduler.running:
            self.scheduler.pause()

        async with self._pass_lock:
            pass

        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            # AsyncIOScheduler may run the shutdown as an event loop callback
            while self.scheduler.running:
                await asyncio.sleep(0)
        logger.info("Sync scheduler stopped")
