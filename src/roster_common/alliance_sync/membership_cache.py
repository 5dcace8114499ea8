"""In-memory rank cache for every tracked alliance member."""

import logging
from collections.abc import Iterable

logger = logging.getLogger(__name__)


class MembershipCache:
    """Maps character name -> org rank for members that grant alliance access.

    One instance lives for the whole process. The reconciliation run that is
    currently executing is the only writer; access checks read it at any time.
    Everything runs on the asyncio loop, so no lock is taken.
    """

    def __init__(self):
        self._ranks: dict[str, int] = {}

    def get(self, name: str) -> int | None:
        return self._ranks.get(name)

    def set(self, name: str, rank: int) -> None:
        self._ranks[name] = int(rank)

    def remove(self, name: str) -> bool:
        """Drop a name. Returns True if it was cached."""
        return self._ranks.pop(name, None) is not None

    def rebuild(self, records: Iterable[tuple[str, int]]) -> int:
        """Replace the whole cache with (name, rank) pairs. Returns the new size."""
        self._ranks = {name: int(rank) for name, rank in records}
        logger.info("Alliance membership cache rebuilt with %d members", len(self._ranks))
        return len(self._ranks)

    def names(self) -> "set[str]":
        return set(self._ranks)

    def __contains__(self, name: str) -> bool:
        return name in self._ranks

    def __len__(self) -> int:
        return len(self._ranks)
