"""
Operator actions for the alliance: org registration, manual resync and
manual member overrides.

Every action keeps the three views of membership in step: the member table,
the buddy list (tag "alliance") and the membership cache.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Optional, Union

from .buddylist import BuddyList
from .coordinator import SyncCoordinator, SyncSummary
from .membership_cache import MembershipCache
from .reconciler import BUDDY_TAG, ReconcileResult
from .store import (
    MODE_ADD,
    MODE_DEL,
    AllianceOrgStats,
    OrgNotRegistered,
    RosterStore,
)

logger = logging.getLogger(__name__)

Reply = Callable[[str], Union[None, Awaitable[None]]]


async def _send(reply: Optional[Reply], message: str) -> None:
    if reply is None:
        return
    result = reply(message)
    if inspect.isawaitable(result):
        await result


class AllianceService:
    """Owns the alliance membership state for the running process."""

    def __init__(
        self,
        store: RosterStore,
        cache: MembershipCache,
        buddylist: BuddyList,
        coordinator: SyncCoordinator,
        default_rank: int = 6,
        dimension: int = 5,
        buddy_tag: str = BUDDY_TAG,
    ):
        self.store = store
        self.cache = cache
        self.buddylist = buddylist
        self.coordinator = coordinator
        self.default_rank = default_rank
        self.dimension = dimension
        self.buddy_tag = buddy_tag

    async def startup(self) -> int:
        """Load the cache from the database and watch every cached member."""
        seed = await self.store.load_cache_seed(self.default_rank, self.dimension)
        size = self.cache.rebuild(seed)
        for name in self.cache.names():
            self.buddylist.add(name, self.buddy_tag)
        self.buddylist.add_listener(self.on_presence_change)
        return size

    # ------------------------------------------------------------------
    # Roster sync
    # ------------------------------------------------------------------

    async def update_rosters(self, reply: Optional[Reply] = None) -> SyncSummary:
        """Resync every registered org. `reply` gets human-readable status only."""
        logger.info("Starting Alliance Roster update")
        await _send(reply, "Starting Alliance Roster update")

        org_ids = await self.store.list_org_ids()

        async def _done(summary: SyncSummary) -> None:
            logger.info(
                "Finished Alliance Roster update: %d orgs synced, %d skipped, %d new, %d removed",
                summary.synced, summary.skipped, summary.new, summary.removed,
            )
            await _send(reply, "Finished Alliance Roster update")

        return await self.coordinator.sync_all(org_ids, _done)

    # ------------------------------------------------------------------
    # Orgs
    # ------------------------------------------------------------------

    async def add_org(self, org_id: int, added_by: str) -> Optional[ReconcileResult]:
        """Register an org and pull its roster right away.

        Raises OrgAlreadyRegistered if the org is already in the alliance.
        Returns the reconcile result of the first sync, None if it failed.
        """
        await self.store.insert_org(org_id, added_by)
        logger.info("Org %d added to the alliance by %s", org_id, added_by)

        summary = await self.coordinator.sync_all([org_id])
        return summary.results[0] if summary.results else None

    async def remove_org(self, org_id: int) -> int:
        """Drop an org and all of its members. Returns the number of members removed."""
        names = await self.store.delete_org(org_id)
        if names is None:
            raise OrgNotRegistered(f"Org {org_id} is not a member of this alliance")

        for name in names:
            self.buddylist.remove(name, self.buddy_tag)
            self.cache.remove(name)
        logger.info("Org %d removed from the alliance along with %d members", org_id, len(names))
        return len(names)

    async def list_orgs(self) -> list[AllianceOrgStats]:
        return await self.store.list_orgs()

    # ------------------------------------------------------------------
    # Manual member overrides
    # ------------------------------------------------------------------

    async def add_member(self, name: str, org_id: int, rank: Optional[int] = None) -> None:
        """Track a character manually. Reconciliation never removes it."""
        await self.store.upsert_member(name, org_id, MODE_ADD)
        self.buddylist.add(name, self.buddy_tag)
        if rank is not None:
            self.cache.set(name, rank)

    async def suppress_member(self, name: str) -> bool:
        """Keep the record but stop tracking the character."""
        changed = await self.store.set_member_mode(name, MODE_DEL)
        if changed:
            self.buddylist.remove(name, self.buddy_tag)
            self.cache.remove(name)
        return changed

    async def remove_member(self, name: str) -> bool:
        deleted = await self.store.delete_member(name)
        if deleted:
            self.buddylist.remove(name, self.buddy_tag)
            self.cache.remove(name)
        return deleted

    # ------------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------------

    async def on_presence_change(self, name: str, online: bool) -> None:
        if online or not self.buddylist.is_watched(name, self.buddy_tag):
            return
        await self.store.set_logged_off(name)
