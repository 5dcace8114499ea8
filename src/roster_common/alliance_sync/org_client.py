"""
Client for the public organization roster export.

Handles:
- One roster download per organization id
- Parsing the [org_info, members, last_updated] JSON payload
- Turning every failure (HTTP error, timeout, bad payload) into None

Usage:
    client = OrgRosterClient(dimension=5)
    await client.initialize()
    roster = await client.fetch(725003)
    if roster is not None:
        for member in roster.members:
            print(member.name, member.rank)
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

ROSTER_BASE_URL = "https://people.anarchy-online.com"
ROSTER_PATH = "/org/stats/d/{dimension}/name/{org_id}/basicstats.xml"


@dataclass
class RosterMember:
    """One character from an org roster. rank is None when not on the rank list."""
    name: str
    rank: Optional[int] = None
    rank_title: str = ""


@dataclass
class OrgRoster:
    """A downloaded org roster."""
    org_id: int
    org_name: str
    members: list[RosterMember] = field(default_factory=list)


class OrgRosterClient:
    """Async client for the organization roster JSON export."""

    def __init__(
        self,
        dimension: int = 5,
        base_url: str = ROSTER_BASE_URL,
        timeout: float = 30.0,
    ):
        self.dimension = dimension
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        self._http_client: Optional[httpx.AsyncClient] = None

    async def initialize(self):
        """Create the HTTP client."""
        self._http_client = httpx.AsyncClient(timeout=self.timeout)

    async def close(self):
        """Clean up HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def roster_url(self, org_id: int) -> str:
        return self.base_url + ROSTER_PATH.format(dimension=self.dimension, org_id=org_id)

    async def fetch(self, org_id: int) -> Optional[OrgRoster]:
        """
        Download and parse the roster of one organization.

        Returns None if the roster could not be downloaded or parsed.
        """
        if self._http_client is None:
            await self.initialize()

        url = self.roster_url(org_id)
        try:
            response = await self._http_client.get(url, params={"data_type": "json"})
        except httpx.HTTPError as exc:
            logger.error("Error downloading the roster of org %d: %s", org_id, exc)
            return None

        if response.status_code == 404:
            logger.warning("Org roster 404: org %d does not exist", org_id)
            return None

        try:
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPStatusError, ValueError) as exc:
            logger.error("Error downloading the roster of org %d: %s", org_id, exc)
            return None

        return parse_roster(org_id, data)


def parse_roster(org_id: int, data) -> Optional[OrgRoster]:
    """Parse the roster export payload. Returns None if it is malformed."""
    if not isinstance(data, list) or len(data) < 2:
        logger.error("Malformed roster payload for org %d", org_id)
        return None

    org_info, raw_members = data[0], data[1]
    if not isinstance(org_info, dict) or not isinstance(raw_members, list):
        logger.error("Malformed roster payload for org %d", org_id)
        return None

    members = []
    for entry in raw_members:
        if not isinstance(entry, dict):
            continue
        name = (entry.get("NAME") or "").strip()
        if not name:
            continue
        rank = entry.get("RANK")
        try:
            rank = int(rank) if rank is not None and rank != "" else None
        except (TypeError, ValueError):
            rank = None
        members.append(RosterMember(
            name=name,
            rank=rank,
            rank_title=entry.get("RANK_TITLE") or "",
        ))

    roster = OrgRoster(
        org_id=org_id,
        org_name=org_info.get("NAME") or f"Org {org_id}",
        members=members,
    )
    logger.info("Fetched %d members of %s (%d)", len(members), roster.org_name, org_id)
    return roster
