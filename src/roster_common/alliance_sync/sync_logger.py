"""
Audit trail for alliance roster syncs.

Each run gets one alliance.sync_log row: opened as 'running' when the run
starts, closed with the SyncSummary totals, the per-org outcomes and the ids
of orgs whose download failed. A run that raises is closed as 'error' with
whatever summary was attached before the failure.
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Optional

import asyncpg

from .coordinator import SyncSummary

logger = logging.getLogger(__name__)


def org_outcomes(summary: SyncSummary) -> list[dict]:
    """One JSON-ready dict per reconciled org."""
    outcomes = []
    for result in summary.results:
        outcome = {"org_id": result.org_id, "org_name": result.org_name}
        outcome.update(result.as_stats())
        if result.skipped:
            outcome["skipped"] = True
        if result.error:
            outcome["error"] = result.error
        outcomes.append(outcome)
    return outcomes


class SyncRunLog:
    """Async context manager bracketing one roster sync in alliance.sync_log.

    Attach the finished cycle with ``log.summary = summary`` before leaving
    the block.
    """

    def __init__(self, pool: asyncpg.Pool, source: str):
        self.pool = pool
        self.source = source
        self.log_id: Optional[int] = None
        self.summary: Optional[SyncSummary] = None
        self._started = 0.0

    async def __aenter__(self):
        self._started = time.monotonic()
        async with self.pool.acquire() as conn:
            self.log_id = await conn.fetchval(
                """INSERT INTO alliance.sync_log (source, status)
                   VALUES ($1, 'running') RETURNING id""",
                self.source,
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        duration = time.monotonic() - self._started
        summary = self.summary or SyncSummary()
        if exc_type:
            status = "error"
        elif summary.skipped:
            status = "partial"
        else:
            status = "success"

        async with self.pool.acquire() as conn:
            await conn.execute(
                """UPDATE alliance.sync_log SET
                    status = $2,
                    orgs_synced = $3,
                    orgs_skipped = $4,
                    members_new = $5,
                    members_removed = $6,
                    failed_org_ids = $7,
                    org_results = $8::jsonb,
                    error_message = $9,
                    duration_seconds = $10,
                    completed_at = $11
                   WHERE id = $1""",
                self.log_id,
                status,
                summary.synced,
                summary.skipped,
                summary.new,
                summary.removed,
                list(summary.failed),
                json.dumps(org_outcomes(summary)),
                str(exc_val) if exc_val else None,
                duration,
                datetime.now(timezone.utc),
            )

        if exc_type:
            logger.error("Alliance sync %s failed after %.1fs: %s", self.source, duration, exc_val)
        else:
            logger.info(
                "Alliance sync %s %s in %.1fs: %d orgs synced, %d skipped, failed downloads %s",
                self.source, status, duration, summary.synced, summary.skipped,
                summary.failed or "none",
            )
        return False
