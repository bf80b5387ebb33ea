"""Short-lived cache for floor and room listings.

Booking state is never cached; only topology reads go through here, and any
topology write drops every entry with ``invalidate()``.
"""
from __future__ import annotations

import logging
from typing import Callable, Hashable, List, TypeVar

from cachetools import TTLCache

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ListingCache:
    """Keyed by ``(listing, *filters)`` tuples, values are response lists."""

    def __init__(self, ttl: int, maxsize: int = 256) -> None:
        self._entries: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)

    def load(self, key: Hashable, loader: Callable[[], List[T]]) -> List[T]:
        # An empty listing is a valid hit, so test membership instead of truthiness.
        if key in self._entries:
            return self._entries[key]
        listing = loader()
        self._entries[key] = listing
        return listing

    def invalidate(self) -> None:
        if self._entries:
            logger.debug("Dropping %d cached topology listings", len(self._entries))
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
