"""
Fan-out / fan-in for alliance roster syncs.

One task per org is started at once (fetch, then reconcile). All tasks are
joined with asyncio.gather and the completion callback runs exactly once
afterwards. A failed or empty download only skips its own org.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Optional, Union

from .org_client import OrgRosterClient
from .reconciler import ReconcileResult, RosterReconciler

logger = logging.getLogger(__name__)


@dataclass
class SyncSummary:
    """Outcome of one sync_all() cycle."""
    results: list[ReconcileResult] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)

    @property
    def synced(self) -> int:
        return sum(1 for r in self.results if not r.skipped and r.error is None)

    @property
    def skipped(self) -> int:
        return len(self.failed) + sum(1 for r in self.results if r.skipped or r.error)

    @property
    def removed(self) -> int:
        return sum(r.removed for r in self.results)

    @property
    def new(self) -> int:
        return sum(r.new for r in self.results)

    def as_stats(self) -> dict:
        return {
            "synced": self.synced,
            "skipped": self.skipped,
            "new": self.new,
            "removed": self.removed,
        }


CompletionCallback = Callable[[SyncSummary], Union[None, Awaitable[None]]]


class SyncCoordinator:
    """Runs fetch + reconcile for many orgs concurrently."""

    def __init__(self, client: OrgRosterClient, reconciler: RosterReconciler):
        self.client = client
        self.reconciler = reconciler

    async def sync_all(
        self,
        org_ids: Iterable[int],
        on_complete: Optional[CompletionCallback] = None,
    ) -> SyncSummary:
        org_ids = list(org_ids)
        summary = SyncSummary()

        if org_ids:
            outcomes = await asyncio.gather(*(self._sync_org(org_id) for org_id in org_ids))
            for org_id, outcome in zip(org_ids, outcomes):
                if outcome is None:
                    summary.failed.append(org_id)
                else:
                    summary.results.append(outcome)

        if on_complete is not None:
            try:
                done = on_complete(summary)
                if inspect.isawaitable(done):
                    await done
            except Exception as exc:
                logger.error("Roster sync completion callback failed: %s", exc, exc_info=True)
        return summary

    async def _sync_org(self, org_id: int) -> Optional[ReconcileResult]:
        try:
            roster = await self.client.fetch(org_id)
        except Exception as exc:
            logger.error("Error downloading the roster of org %d: %s", org_id, exc)
            return None
        if roster is None:
            logger.error("Error downloading the roster of org %d, skipping it", org_id)
            return None

        try:
            return await self.reconciler.reconcile(roster)
        except Exception as exc:
            logger.error(
                "Roster reconciliation for org %d failed: %s", org_id, exc, exc_info=True
            )
            return ReconcileResult(org_id=org_id, org_name=roster.org_name, error=str(exc))
