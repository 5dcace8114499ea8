"""
Presence tracking watch list.

Each watched character carries the set of tags (subsystem identifiers) that
asked for it. A character stays on the list while at least one tag holds it,
so one subsystem removing its tag never drops another subsystem's entry.

Usage:
    buddies = BuddyList()
    buddies.add("Alice", "alliance")
    buddies.remove("Alice", "alliance")
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Union

logger = logging.getLogger(__name__)

PresenceListener = Callable[[str, bool], Union[None, Awaitable[None]]]


class BuddyList:
    """Tagged, idempotent presence watch list."""

    def __init__(self):
        self._tags: dict[str, set[str]] = {}
        self._online: dict[str, bool] = {}
        self._listeners: list[PresenceListener] = []

    def add(self, name: str, tag: str) -> bool:
        """Watch `name` on behalf of `tag`. Returns True if the tag was new."""
        tags = self._tags.setdefault(name, set())
        if tag in tags:
            return False
        tags.add(tag)
        logger.debug("Buddy %s added for %s", name, tag)
        return True

    def remove(self, name: str, tag: str) -> bool:
        """Stop watching `name` for `tag`. Returns True if the tag was held."""
        tags = self._tags.get(name)
        if not tags or tag not in tags:
            return False
        tags.discard(tag)
        if not tags:
            del self._tags[name]
            self._online.pop(name, None)
        logger.debug("Buddy %s removed for %s", name, tag)
        return True

    def is_watched(self, name: str, tag: str | None = None) -> bool:
        tags = self._tags.get(name)
        if not tags:
            return False
        return tag is None or tag in tags

    def names(self, tag: str) -> set[str]:
        return {name for name, tags in self._tags.items() if tag in tags}

    def is_online(self, name: str) -> bool:
        return self._online.get(name, False)

    def add_listener(self, listener: PresenceListener) -> None:
        self._listeners.append(listener)

    async def set_online(self, name: str, online: bool) -> None:
        """Record a logon/logoff for a watched character and notify listeners."""
        if name not in self._tags:
            return
        if self._online.get(name) == online:
            return
        self._online[name] = online
        for listener in self._listeners:
            try:
                result = listener(name, online)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error("Presence listener failed for %s: %s", name, exc, exc_info=True)
