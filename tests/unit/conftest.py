"""
In-memory stand-ins for the alliance store and roster client.

FakeRosterStore mirrors RosterStore's behaviour on plain dicts so the
reconciler, coordinator and operator actions can be tested without a
database. It counts every write so idempotence can be asserted.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from roster_common.alliance_sync.buddylist import BuddyList
from roster_common.alliance_sync.membership_cache import MembershipCache
from roster_common.alliance_sync.org_client import OrgRoster, RosterMember
from roster_common.alliance_sync.store import (
    MEMBER_MODES,
    AllianceOrgStats,
    MemberRecord,
    OrgAlreadyRegistered,
)


class FakeRosterStore:
    def __init__(self):
        self.members: dict[str, MemberRecord] = {}
        self.orgs: dict[int, AllianceOrgStats] = {}
        self.ranks: dict[str, tuple[int, int, int]] = {}
        self.writes = 0
        self.fail_transaction = False
        self.fail_delete_for: set[str] = set()

    def seed(self, name, org_id, mode="org"):
        self.members[name] = MemberRecord(name=name, org_id=org_id, mode=mode)

    async def list_members(self, org_id=None):
        return {
            name: MemberRecord(r.name, r.org_id, r.mode, r.logged_off)
            for name, r in self.members.items()
            if org_id is None or r.org_id == org_id
        }

    async def get_member(self, name):
        return self.members.get(name)

    async def apply_roster_changes(self, org_id, inserts, promotions):
        if not inserts and not promotions:
            return []
        if self.fail_transaction:
            raise RuntimeError("connection lost")
        inserted = []
        for name in inserts:
            if name in self.members:
                continue
            self.members[name] = MemberRecord(name=name, org_id=org_id, mode="org")
            inserted.append(name)
            self.writes += 1
        for name in promotions:
            if self.members[name].mode == "add":
                self.members[name].mode = "org"
                self.writes += 1
        return inserted

    async def upsert_member(self, name, org_id, mode):
        assert mode in MEMBER_MODES
        self.members[name] = MemberRecord(name=name, org_id=org_id, mode=mode)
        self.writes += 1

    async def set_member_mode(self, name, mode):
        if name not in self.members:
            return False
        self.members[name].mode = mode
        self.writes += 1
        return True

    async def delete_member(self, name, org_id=None):
        if name in self.fail_delete_for:
            raise RuntimeError("connection lost")
        record = self.members.get(name)
        if record is None or (org_id is not None and record.org_id != org_id):
            return False
        del self.members[name]
        self.writes += 1
        return True

    async def set_logged_off(self, name, when=None):
        if name in self.members:
            self.members[name].logged_off = when or datetime.now(timezone.utc)
            self.writes += 1

    async def load_cache_seed(self, default_rank=6, dimension=5):
        seed = []
        for name, record in self.members.items():
            if record.mode == "del":
                continue
            guild_id, rank, dim = self.ranks.get(name, (None, None, None))
            matched = guild_id == record.org_id and dim == dimension and rank is not None
            seed.append((name, rank if matched else default_rank))
        return seed

    async def list_org_ids(self):
        return sorted(self.orgs)

    async def list_orgs(self):
        return [
            AllianceOrgStats(
                org_id=org.org_id,
                added_by=org.added_by,
                added_dt=org.added_dt,
                members=sum(1 for m in self.members.values() if m.org_id == org.org_id),
                org_name=org.org_name,
            )
            for org in self.orgs.values()
        ]

    async def get_org(self, org_id):
        return self.orgs.get(org_id)

    async def insert_org(self, org_id, added_by):
        if org_id in self.orgs:
            raise OrgAlreadyRegistered(f"Org {org_id} is already in the alliance")
        self.orgs[org_id] = AllianceOrgStats(
            org_id=org_id, added_by=added_by, added_dt=datetime.now(timezone.utc)
        )
        self.writes += 1

    async def set_org_name(self, org_id, org_name):
        org = self.orgs.get(org_id)
        if org is None or org.org_name == org_name:
            return False
        org.org_name = org_name
        self.writes += 1
        return True

    async def delete_org(self, org_id):
        if self.orgs.pop(org_id, None) is None:
            return None
        names = [name for name, m in self.members.items() if m.org_id == org_id]
        for name in names:
            del self.members[name]
        self.writes += 1 + len(names)
        return names


class YieldingRosterStore(FakeRosterStore):
    """Hands control back to the loop after taking each snapshot, so
    concurrent reconciles both read the table before either writes."""

    async def list_members(self, org_id=None):
        snapshot = await super().list_members(org_id)
        await asyncio.sleep(0)
        return snapshot


class FakeRosterClient:
    """Returns canned rosters; an org id mapped to an exception raises it."""

    def __init__(self, rosters=None):
        self.rosters = rosters or {}
        self.calls: list[int] = []

    async def fetch(self, org_id):
        self.calls.append(org_id)
        roster = self.rosters.get(org_id)
        if isinstance(roster, Exception):
            raise roster
        return roster


def make_roster(org_id, org_name, members):
    """members: list of (name, rank) tuples; rank may be None."""
    return OrgRoster(
        org_id=org_id,
        org_name=org_name,
        members=[RosterMember(name=name, rank=rank) for name, rank in members],
    )


@pytest.fixture
def store():
    return FakeRosterStore()


@pytest.fixture
def yielding_store():
    return YieldingRosterStore()


@pytest.fixture
def cache():
    return MembershipCache()


@pytest.fixture
def buddylist():
    return BuddyList()


@pytest.fixture
def roster():
    """Factory: roster(org_id, org_name, [(name, rank), ...])."""
    return make_roster


@pytest.fixture
def roster_client():
    """Factory: roster_client({org_id: OrgRoster | None | Exception})."""
    return FakeRosterClient
