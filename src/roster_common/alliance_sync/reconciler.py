"""
Reconciles one downloaded org roster against the local alliance members.

Per org run:
  1. snapshot every member record (all orgs) keyed by name
  2. walk the remote roster, planning inserts and add->org promotions
  3. write inserts + promotions in one transaction, then patch the
     buddy list and the membership cache. A new name another org's run
     inserted in the meantime belongs to that run and is not granted here
  4. delete this org's records that were not on the roster (except manual
     'add' entries), one statement each, outside the transaction

Step 4 is not atomic. Records left behind by a crash part way through are
still missing from the next roster and get removed on the next run.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .buddylist import BuddyList
from .membership_cache import MembershipCache
from .org_client import OrgRoster
from .store import MODE_ADD, MODE_DEL, RosterStore

logger = logging.getLogger(__name__)

BUDDY_TAG = "alliance"


@dataclass
class ReconcileResult:
    org_id: int
    org_name: str
    found: int = 0
    new: int = 0
    promoted: int = 0
    suppressed: int = 0
    removed: int = 0
    skipped: bool = False
    error: Optional[str] = None

    def as_stats(self) -> dict:
        return {
            "found": self.found,
            "new": self.new,
            "promoted": self.promoted,
            "suppressed": self.suppressed,
            "removed": self.removed,
        }


class RosterReconciler:
    """Turns a remote org roster into member, buddy list and cache changes."""

    def __init__(
        self,
        store: RosterStore,
        cache: MembershipCache,
        buddylist: BuddyList,
        bot_name: str,
        buddy_tag: str = BUDDY_TAG,
    ):
        self.store = store
        self.cache = cache
        self.buddylist = buddylist
        self.bot_name = bot_name
        self.buddy_tag = buddy_tag

    async def reconcile(self, org: OrgRoster) -> ReconcileResult:
        result = ReconcileResult(org_id=org.org_id, org_name=org.org_name)

        # An empty roster never wipes an org
        if not org.members:
            logger.error(
                "The organisation %s has no members. Not changing its roster", org.org_name
            )
            result.skipped = True
            return result

        db_entries = await self.store.list_members()
        own_name = self.bot_name.lower()

        inserts: list[str] = []
        promotions: list[str] = []
        grants: dict[str, int] = {}
        revokes: list[str] = []
        seen: set[str] = set()

        for member in org.members:
            if member.name.lower() == own_name:
                continue
            result.found += 1
            existing = db_entries.get(member.name)

            if existing is not None:
                if existing.mode == MODE_DEL:
                    # suppressed members stay in the table but are never watched
                    revokes.append(member.name)
                elif member.rank is not None:
                    grants[member.name] = member.rank
                    if existing.mode == MODE_ADD:
                        promotions.append(member.name)
            elif member.rank is not None and member.name not in grants:
                grants[member.name] = member.rank
                inserts.append(member.name)

            seen.add(member.name)

        try:
            inserted = await self.store.apply_roster_changes(org.org_id, inserts, promotions)
        except Exception as exc:
            logger.error(
                "Roster update for %s rolled back: %s", org.org_name, exc, exc_info=True
            )
            result.error = str(exc)
            return result

        for name in set(inserts).difference(inserted):
            logger.info("%s was claimed by another org, skipping", name)
            del grants[name]

        for name, rank in grants.items():
            self.buddylist.add(name, self.buddy_tag)
            self.cache.set(name, rank)
        for name in revokes:
            self.buddylist.remove(name, self.buddy_tag)
            self.cache.remove(name)
        result.new = len(inserted)
        result.promoted = len(promotions)
        result.suppressed = len(revokes)

        try:
            await self.store.set_org_name(org.org_id, org.org_name)
        except Exception as exc:
            logger.error("Could not store the name of org %s: %s", org.org_id, exc)

        # Remove buddies who are no longer org members
        for name, record in db_entries.items():
            if name in seen or record.org_id != org.org_id or record.mode == MODE_ADD:
                continue
            try:
                deleted = await self.store.delete_member(name, org.org_id)
            except Exception as exc:
                logger.error("Could not remove %s from the alliance: %s", name, exc)
                continue
            self.buddylist.remove(name, self.buddy_tag)
            self.cache.remove(name)
            if deleted:
                result.removed += 1
                logger.info("%s has left %s", name, org.org_name)

        logger.info(
            "Finished roster update for %s: %d found, %d new, %d promoted, %d removed",
            org.org_name, result.found, result.new, result.promoted, result.removed,
        )
        return result
