"""
Background scheduler for the event sync service.

Jobs:
- Sync current events: every SYNC_INTERVAL_MINUTES, sync every event with a
  sync source whose start/end window contains now

Scheduler: APScheduler (lightweight, FastAPI-compatible)
"""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.services.sync.dispatcher import BatchSyncResult, EventSyncDispatcher

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Scheduler for background sync jobs.

    Passes for different events run concurrently inside one job run; the
    job itself never overlaps with its previous run.
    """

    def __init__(self, dispatcher: Optional[EventSyncDispatcher] = None):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.running = False
        self.dispatcher = dispatcher or EventSyncDispatcher()

    async def start(self):
        """Start the scheduler."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting sync scheduler...")

        self.scheduler = AsyncIOScheduler(
            timezone='UTC',
            job_defaults={
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,  # Only one instance of each job
                'misfire_grace_time': 60
            }
        )

        self._schedule_current_events_sync()

        self.scheduler.start()
        self.running = True

        logger.info("Scheduler started with %d jobs", len(self.scheduler.get_jobs()))
        self._log_scheduled_jobs()

    async def stop(self):
        """Stop the scheduler."""
        if not self.running:
            return

        logger.info("Stopping scheduler...")
        self.scheduler.shutdown(wait=False)
        self.running = False
        logger.info("Scheduler stopped")

    async def run_current_events_sync(self) -> Optional[BatchSyncResult]:
        """Job body: sync all current events and log the outcome."""
        try:
            result = await self.dispatcher.sync_current_events()
        except Exception as e:
            logger.error(f"Current events sync failed: {e}", exc_info=True)
            return None

        if result.success:
            logger.info("Current events sync completed")
        else:
            logger.warning(
                f"Current events sync finished with {len(result.failures)} failures:\n{result.message}"
            )
        return result

    def _schedule_current_events_sync(self):
        """
        Schedule: Sync current events.

        Frequency: Every SYNC_INTERVAL_MINUTES (default 5)
        """
        if self.scheduler is None:
            return

        self.scheduler.add_job(
            self.run_current_events_sync,
            trigger=IntervalTrigger(minutes=settings.SYNC_INTERVAL_MINUTES),
            id='sync_current_events',
            name='Sync Current Events',
        )

        logger.info(f"Scheduled: Current events sync (every {settings.SYNC_INTERVAL_MINUTES} minutes)")

    def _log_scheduled_jobs(self):
        """Log all scheduled jobs for visibility."""
        for job in self.scheduler.get_jobs():
            next_run = job.next_run_time
            next_run_str = next_run.strftime('%Y-%m-%d %H:%M UTC') if next_run else 'Pending'
            logger.info(f"  {job.name} (id={job.id}), next run: {next_run_str}")


# Global scheduler instance
_scheduler: Optional[SyncScheduler] = None


async def start_scheduler():
    """Start the global scheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = SyncScheduler()
        await _scheduler.start()
    return _scheduler


async def stop_scheduler():
    """Stop the global scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None


def get_scheduler() -> Optional[SyncScheduler]:
    """Get the global scheduler instance."""
    return _scheduler
