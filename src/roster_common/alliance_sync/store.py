"""
Persistence for alliance orgs and their tracked members.

Two tables in the alliance schema:
  alliance_orgs     one row per org registered in the alliance
  alliance_members  one row per tracked character, keyed by name

Every statement is parameterized; callers never build SQL.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import asyncpg

logger = logging.getLogger(__name__)

MODE_ADD = "add"
MODE_ORG = "org"
MODE_DEL = "del"
MEMBER_MODES = (MODE_ADD, MODE_ORG, MODE_DEL)


class OrgAlreadyRegistered(ValueError):
    """The org is already a member of the alliance."""


class OrgNotRegistered(ValueError):
    """The org is not a member of the alliance."""


@dataclass
class MemberRecord:
    name: str
    org_id: int
    mode: str
    logged_off: Optional[datetime] = None


@dataclass
class AllianceOrgStats:
    org_id: int
    added_by: str
    added_dt: datetime
    members: int = 0
    org_name: Optional[str] = None


def _member_from_row(row) -> MemberRecord:
    return MemberRecord(
        name=row["name"],
        org_id=row["org_id"],
        mode=row["mode"],
        logged_off=row["logged_off"],
    )


class RosterStore:
    """asyncpg-backed repository for the alliance tables."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    async def list_members(self, org_id: Optional[int] = None) -> dict[str, MemberRecord]:
        """Return member records keyed by name, for one org or all of them."""
        async with self.pool.acquire() as conn:
            if org_id is None:
                rows = await conn.fetch(
                    "SELECT name, org_id, mode, logged_off FROM alliance.alliance_members"
                )
            else:
                rows = await conn.fetch(
                    """SELECT name, org_id, mode, logged_off
                       FROM alliance.alliance_members
                       WHERE org_id = $1""",
                    org_id,
                )
        return {row["name"]: _member_from_row(row) for row in rows}

    async def get_member(self, name: str) -> Optional[MemberRecord]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """SELECT name, org_id, mode, logged_off
                   FROM alliance.alliance_members WHERE name = $1""",
                name,
            )
        return _member_from_row(row) if row else None

    async def apply_roster_changes(
        self,
        org_id: int,
        inserts: list[str],
        promotions: list[str],
    ) -> list[str]:
        """Insert new org members and promote manual entries in one transaction.

        A name another org's run inserted first is left alone. Returns the
        names this call actually inserted.
        """
        if not inserts and not promotions:
            return []
        inserted = []
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                for name in inserts:
                    row_name = await conn.fetchval(
                        """INSERT INTO alliance.alliance_members (name, org_id, mode)
                           VALUES ($1, $2, 'org')
                           ON CONFLICT (name) DO NOTHING
                           RETURNING name""",
                        name, org_id,
                    )
                    if row_name is not None:
                        inserted.append(row_name)
                for name in promotions:
                    await conn.execute(
                        """UPDATE alliance.alliance_members SET mode = 'org'
                           WHERE name = $1 AND mode = 'add'""",
                        name,
                    )
        return inserted

    async def upsert_member(self, name: str, org_id: int, mode: str) -> None:
        if mode not in MEMBER_MODES:
            raise ValueError(f"Invalid member mode {mode!r}")
        async with self.pool.acquire() as conn:
            await conn.execute(
                """INSERT INTO alliance.alliance_members (name, org_id, mode)
                   VALUES ($1, $2, $3)
                   ON CONFLICT (name) DO UPDATE
                   SET org_id = EXCLUDED.org_id, mode = EXCLUDED.mode""",
                name, org_id, mode,
            )

    async def set_member_mode(self, name: str, mode: str) -> bool:
        if mode not in MEMBER_MODES:
            raise ValueError(f"Invalid member mode {mode!r}")
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "UPDATE alliance.alliance_members SET mode = $2 WHERE name = $1",
                name, mode,
            )
        return _affected(result) > 0

    async def delete_member(self, name: str, org_id: Optional[int] = None) -> bool:
        """Delete one member record. Scoped to org_id when given."""
        async with self.pool.acquire() as conn:
            if org_id is None:
                result = await conn.execute(
                    "DELETE FROM alliance.alliance_members WHERE name = $1", name,
                )
            else:
                result = await conn.execute(
                    "DELETE FROM alliance.alliance_members WHERE name = $1 AND org_id = $2",
                    name, org_id,
                )
        return _affected(result) > 0

    async def set_logged_off(self, name: str, when: Optional[datetime] = None) -> None:
        when = when or datetime.now(timezone.utc)
        async with self.pool.acquire() as conn:
            await conn.execute(
                "UPDATE alliance.alliance_members SET logged_off = $2 WHERE name = $1",
                name, when,
            )

    async def load_cache_seed(
        self, default_rank: int = 6, dimension: int = 5,
    ) -> list[tuple[str, int]]:
        """(name, rank) for every non-suppressed member, rank from the player lookup table.

        The lookup table can hold several dimensions; only rows for this
        server's dimension count.
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """SELECT a.name, COALESCE(p.guild_rank_id, $1) AS guild_rank_id
                   FROM alliance.alliance_members a
                   LEFT JOIN alliance.players p
                     ON p.name = a.name AND p.guild_id = a.org_id AND p.dimension = $2
                   WHERE a.mode != 'del'""",
                default_rank, dimension,
            )
        return [(row["name"], row["guild_rank_id"]) for row in rows]

    # ------------------------------------------------------------------
    # Orgs
    # ------------------------------------------------------------------

    async def list_org_ids(self) -> list[int]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("SELECT org_id FROM alliance.alliance_orgs ORDER BY org_id")
        return [row["org_id"] for row in rows]

    async def list_orgs(self) -> list[AllianceOrgStats]:
        """All registered orgs with their live member counts."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """SELECT o.org_id, o.org_name, o.added_by, o.added_dt,
                          COUNT(m.name) AS members
                   FROM alliance.alliance_orgs o
                   LEFT JOIN alliance.alliance_members m ON m.org_id = o.org_id
                   GROUP BY o.org_id, o.org_name, o.added_by, o.added_dt
                   ORDER BY o.added_dt"""
            )
        return [
            AllianceOrgStats(
                org_id=row["org_id"],
                added_by=row["added_by"],
                added_dt=row["added_dt"],
                members=row["members"],
                org_name=row["org_name"],
            )
            for row in rows
        ]

    async def get_org(self, org_id: int) -> Optional[AllianceOrgStats]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """SELECT org_id, org_name, added_by, added_dt
                   FROM alliance.alliance_orgs WHERE org_id = $1""",
                org_id,
            )
        if row is None:
            return None
        return AllianceOrgStats(
            org_id=row["org_id"], added_by=row["added_by"], added_dt=row["added_dt"],
            org_name=row["org_name"],
        )

    async def insert_org(self, org_id: int, added_by: str) -> None:
        async with self.pool.acquire() as conn:
            try:
                await conn.execute(
                    """INSERT INTO alliance.alliance_orgs (org_id, added_by, added_dt)
                       VALUES ($1, $2, $3)""",
                    org_id, added_by, datetime.now(timezone.utc),
                )
            except asyncpg.UniqueViolationError as exc:
                raise OrgAlreadyRegistered(f"Org {org_id} is already in the alliance") from exc

    async def set_org_name(self, org_id: int, org_name: str) -> bool:
        """Remember the name the roster server last reported. No write if unchanged."""
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                """UPDATE alliance.alliance_orgs SET org_name = $2
                   WHERE org_id = $1 AND org_name IS DISTINCT FROM $2""",
                org_id, org_name,
            )
        return _affected(result) > 0

    async def delete_org(self, org_id: int) -> Optional[list[str]]:
        """Remove an org and every member record it owns.

        Returns the names of the deleted member records, or None if the org
        was not registered.
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                result = await conn.execute(
                    "DELETE FROM alliance.alliance_orgs WHERE org_id = $1", org_id,
                )
                if _affected(result) < 1:
                    return None
                rows = await conn.fetch(
                    """DELETE FROM alliance.alliance_members
                       WHERE org_id = $1 RETURNING name""",
                    org_id,
                )
        return [row["name"] for row in rows]


def _affected(status: str) -> int:
    """Row count from an asyncpg command status such as 'DELETE 3'."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0
