#!/usr/bin/env python3
"""
Standalone runner for the event sync scheduler.

Runs the current-events sync job outside the API process, e.g. under systemd
or supervisor when the API runs with SCHEDULER_ENABLED=false.

Usage:
    python run_scheduler.py              # Run in foreground
    python run_scheduler.py --once       # Sync current events once and exit
"""
import asyncio
import argparse
import signal
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from app.core.config import settings
from app.core.logging import configure_logging, get_logger
from app.core.scheduler import SyncScheduler
from app.services.clients.registry import close_data_clients

configure_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)
logger = get_logger(__name__)


class SchedulerRunner:
    """Runs the sync scheduler until SIGTERM/SIGINT."""

    def __init__(self):
        self.scheduler = SyncScheduler()
        self.shutdown = asyncio.Event()

    async def start(self):
        logger.info("Starting scheduler runner...")
        await self.scheduler.start()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._set_shutdown)

        await self.shutdown.wait()

        await self.scheduler.stop()
        await close_data_clients()
        logger.info("Scheduler runner stopped")

    def _set_shutdown(self):
        logger.info("Shutdown signal received")
        self.shutdown.set()


async def run_once() -> bool:
    """Sync current events once; True when every event synced."""
    try:
        result = await SyncScheduler().run_current_events_sync()
    finally:
        await close_data_clients()
    return result is not None and result.success


def main():
    parser = argparse.ArgumentParser(description='Run the event sync scheduler')
    parser.add_argument(
        '--once',
        action='store_true',
        help='Sync current events once and exit'
    )
    args = parser.parse_args()

    if args.once:
        return 0 if asyncio.run(run_once()) else 1

    try:
        asyncio.run(SchedulerRunner().start())
    except Exception as e:
        logger.error(f"Scheduler error: {e}", exc_info=True)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
