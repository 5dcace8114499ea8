"""
Unit tests for AllianceService operator actions.

Covers org add/remove/list, the manual resync entry point, manual member
overrides, the startup cache rebuild and logoff recording.
"""

import pytest
from unittest.mock import AsyncMock

from roster_common.alliance_sync.coordinator import SyncCoordinator
from roster_common.alliance_sync.operations import AllianceService
from roster_common.alliance_sync.reconciler import BUDDY_TAG, RosterReconciler
from roster_common.alliance_sync.store import OrgAlreadyRegistered, OrgNotRegistered

ORG_A = 1001
ORG_B = 2002


@pytest.fixture
def client(roster_client, roster):
    return roster_client({
        ORG_A: roster(ORG_A, "Org A", [("Alice", 3), ("Bob", 1)]),
        ORG_B: roster(ORG_B, "Org B", [("Cleo", 2)]),
    })


@pytest.fixture
def service(store, cache, buddylist, client):
    reconciler = RosterReconciler(store, cache, buddylist, bot_name="Allybot")
    coordinator = SyncCoordinator(client, reconciler)
    return AllianceService(store, cache, buddylist, coordinator)


class TestAddOrg:
    async def test_add_registers_and_syncs(self, service, store, cache, buddylist):
        result = await service.add_org(ORG_A, "Admin")

        assert ORG_A in store.orgs
        assert store.orgs[ORG_A].added_by == "Admin"
        assert result.new == 2
        assert cache.get("Alice") == 3
        assert buddylist.is_watched("Bob", BUDDY_TAG)

    async def test_duplicate_add_is_rejected(self, service, store, client):
        await service.add_org(ORG_A, "Admin")
        writes = store.writes
        client.calls.clear()

        with pytest.raises(OrgAlreadyRegistered):
            await service.add_org(ORG_A, "Other")

        assert store.writes == writes
        assert client.calls == []
        assert store.orgs[ORG_A].added_by == "Admin"

    async def test_add_with_failed_download(self, service, store, client):
        client.rosters[ORG_A] = None

        result = await service.add_org(ORG_A, "Admin")

        assert result is None
        assert ORG_A in store.orgs


class TestRemoveOrg:
    async def test_remove_cascades(self, service, store, cache, buddylist):
        await service.add_org(ORG_A, "Admin")
        await service.add_org(ORG_B, "Admin")
        await service.add_member("Dex", ORG_A, rank=4)

        removed = await service.remove_org(ORG_A)

        assert removed == 3
        assert ORG_A not in store.orgs
        assert all(m.org_id != ORG_A for m in store.members.values())
        for name in ("Alice", "Bob", "Dex"):
            assert not buddylist.is_watched(name)
            assert name not in cache
        # the other org is intact
        assert cache.get("Cleo") == 2
        assert buddylist.is_watched("Cleo", BUDDY_TAG)

    async def test_remove_unknown_org(self, service, store):
        store.seed("Alice", ORG_A)

        with pytest.raises(OrgNotRegistered):
            await service.remove_org(ORG_A)

        assert "Alice" in store.members

    async def test_remove_keeps_other_subsystem_buddies(self, service, buddylist):
        await service.add_org(ORG_A, "Admin")
        buddylist.add("Alice", "tracker")

        await service.remove_org(ORG_A)

        assert buddylist.is_watched("Alice", "tracker")


class TestListOrgs:
    async def test_lists_live_member_counts(self, service):
        await service.add_org(ORG_A, "Admin")
        await service.add_org(ORG_B, "Mod")

        orgs = {org.org_id: org for org in await service.list_orgs()}

        assert orgs[ORG_A].members == 2
        assert orgs[ORG_B].members == 1
        assert orgs[ORG_B].added_by == "Mod"
        assert orgs[ORG_A].org_name == "Org A"
        assert orgs[ORG_B].org_name == "Org B"


class TestUpdateRosters:
    async def test_update_syncs_every_registered_org(self, service, store, client):
        store.orgs[ORG_A] = None
        store.orgs[ORG_B] = None
        reply = AsyncMock()

        summary = await service.update_rosters(reply)

        assert sorted(client.calls) == [ORG_A, ORG_B]
        assert summary.synced == 2
        assert [c.args[0] for c in reply.await_args_list] == [
            "Starting Alliance Roster update",
            "Finished Alliance Roster update",
        ]

    async def test_update_without_orgs(self, service, client):
        summary = await service.update_rosters()
        assert client.calls == []
        assert summary.synced == 0

    async def test_update_with_plain_callback(self, service):
        messages = []
        await service.update_rosters(messages.append)
        assert messages[-1] == "Finished Alliance Roster update"


class TestManualMembers:
    async def test_add_member_is_manual(self, service, store, cache, buddylist):
        await service.add_member("Dex", ORG_A, rank=4)

        assert store.members["Dex"].mode == "add"
        assert cache.get("Dex") == 4
        assert buddylist.is_watched("Dex", BUDDY_TAG)

    async def test_add_member_without_rank_is_not_cached(self, service, cache, buddylist):
        await service.add_member("Dex", ORG_A)
        assert "Dex" not in cache
        assert buddylist.is_watched("Dex", BUDDY_TAG)

    async def test_manual_member_survives_resync(self, service, store, cache):
        await service.add_org(ORG_A, "Admin")
        await service.add_member("Dex", ORG_A, rank=4)

        await service.update_rosters()

        assert store.members["Dex"].mode == "add"
        assert cache.get("Dex") == 4

    async def test_suppress_member(self, service, store, cache, buddylist):
        await service.add_org(ORG_A, "Admin")

        assert await service.suppress_member("Alice") is True

        assert store.members["Alice"].mode == "del"
        assert "Alice" not in cache
        assert not buddylist.is_watched("Alice")

        # a resync keeps the suppression
        await service.update_rosters()
        assert store.members["Alice"].mode == "del"
        assert "Alice" not in cache

    async def test_suppress_unknown_member(self, service):
        assert await service.suppress_member("Ghost") is False

    async def test_remove_member(self, service, store, cache, buddylist):
        await service.add_member("Dex", ORG_A, rank=4)

        assert await service.remove_member("Dex") is True

        assert "Dex" not in store.members
        assert "Dex" not in cache
        assert not buddylist.is_watched("Dex")


class TestStartup:
    async def test_cache_rebuilt_from_store(self, service, store, cache, buddylist):
        store.seed("Alice", ORG_A)
        store.seed("Bob", ORG_A, mode="add")
        store.seed("Carl", ORG_A, mode="del")
        store.ranks["Alice"] = (ORG_A, 2, 5)
        store.ranks["Bob"] = (ORG_B, 1, 5)

        size = await service.startup()

        assert size == 2
        assert cache.get("Alice") == 2
        # rank from another org does not count, default applies
        assert cache.get("Bob") == 6
        assert "Carl" not in cache
        assert buddylist.names(BUDDY_TAG) == {"Alice", "Bob"}

    async def test_rank_from_other_dimension_is_ignored(self, service, store, cache):
        store.seed("Alice", ORG_A)
        store.ranks["Alice"] = (ORG_A, 2, 1)

        await service.startup()

        assert cache.get("Alice") == 6

    async def test_logoff_recorded_for_tracked_member(self, service, store, buddylist):
        store.seed("Alice", ORG_A)
        store.ranks["Alice"] = (ORG_A, 2, 5)
        await service.startup()

        await buddylist.set_online("Alice", True)
        assert store.members["Alice"].logged_off is None

        await buddylist.set_online("Alice", False)
        assert store.members["Alice"].logged_off is not None
