"""Access levels granted through alliance membership."""

import logging
from collections.abc import Callable
from typing import Optional, Protocol

from .membership_cache import MembershipCache

logger = logging.getLogger(__name__)

# Most privileged first
ACCESS_LEVELS = ["superadmin", "admin", "mod", "rl", "guild", "member", "all"]


class AccessLevelProvider(Protocol):
    def resolve(self, name: str) -> Optional[str]:
        ...


class AllianceAccessProvider:
    """Gives every cached alliance member one configured access level."""

    def __init__(self, cache: MembershipCache, mapped_rank: Callable[[], str] | str = "guild"):
        self.cache = cache
        self._mapped_rank = mapped_rank

    @property
    def mapped_rank(self) -> str:
        if callable(self._mapped_rank):
            return self._mapped_rank()
        return self._mapped_rank

    def resolve(self, name: str) -> Optional[str]:
        if name in self.cache:
            return self.mapped_rank
        return None


class AccessManager:
    """Asks every registered provider and keeps the most privileged answer."""

    def __init__(self, levels: list[str] | None = None):
        self.levels = list(levels or ACCESS_LEVELS)
        self._providers: list[AccessLevelProvider] = []

    def register_provider(self, provider: AccessLevelProvider) -> None:
        self._providers.append(provider)

    def rank_of(self, level: str) -> int:
        try:
            return self.levels.index(level)
        except ValueError:
            return len(self.levels)

    def get_access_level(self, name: str) -> str:
        best = self.levels[-1]
        for provider in self._providers:
            try:
                level = provider.resolve(name)
            except Exception as exc:
                logger.error("Access provider %r failed for %s: %s", provider, name, exc)
                continue
            if level is None:
                continue
            if level not in self.levels:
                logger.warning("Access provider %r returned unknown level %r", provider, level)
                continue
            if self.rank_of(level) < self.rank_of(best):
                best = level
        return best

    def check_access(self, name: str, required: str) -> bool:
        return self.rank_of(self.get_access_level(name)) <= self.rank_of(required)
