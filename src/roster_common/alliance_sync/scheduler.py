"""
Scheduler for the periodic alliance roster sync.

Uses APScheduler to download every alliance org roster once per interval
(24 hours by default). A manual resync goes through the same entry point.
"""

import logging
from typing import Optional

import asyncpg
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .coordinator import SyncSummary
from .operations import AllianceService, Reply
from .org_client import OrgRosterClient
from .sync_logger import SyncRunLog

logger = logging.getLogger(__name__)


class AllianceSyncScheduler:
    """Manages the scheduled alliance roster download."""

    def __init__(
        self,
        db_pool: asyncpg.Pool,
        service: AllianceService,
        client: OrgRosterClient,
        interval_hours: int = 24,
    ):
        self.db_pool = db_pool
        self.service = service
        self.client = client
        self.interval_hours = interval_hours

        self.scheduler = AsyncIOScheduler()

    async def start(self):
        """Initialize the roster client and start the scheduler."""
        await self.client.initialize()

        self.scheduler.add_job(
            self.run_roster_update,
            IntervalTrigger(hours=self.interval_hours),
            id="alliance_roster_sync",
            name="Alliance Org Roster Sync",
            misfire_grace_time=3600,
            max_instances=1,
        )

        self.scheduler.start()
        logger.info("Alliance sync scheduler started (every %d hours)", self.interval_hours)

    async def stop(self):
        """Shut down scheduler and client."""
        if self.scheduler.running:
            self.scheduler.shutdown()
        await self.client.close()

    async def run_roster_update(self, reply: Optional[Reply] = None) -> Optional[SyncSummary]:
        """Resync all alliance orgs and record the run in the sync log."""
        try:
            async with SyncRunLog(self.db_pool, "alliance_roster") as log:
                summary = await self.service.update_rosters(reply)
                log.summary = summary
            return summary
        except Exception as exc:
            logger.error("Alliance roster update failed: %s", exc, exc_info=True)
            return None
