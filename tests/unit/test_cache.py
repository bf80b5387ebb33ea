"""Unit tests for the topology listing cache."""
import time

from common.cache import ListingCache


def _counting_loader(listing):
    calls = []

    def loader():
        calls.append(1)
        return listing

    return loader, calls


class TestListingCache:
    def test_loader_runs_once_per_key(self):
        cache = ListingCache(ttl=60)
        loader, calls = _counting_loader(["Board Room"])

        assert cache.load(("rooms", None), loader) == ["Board Room"]
        assert cache.load(("rooms", None), loader) == ["Board Room"]
        assert len(calls) == 1

    def test_filters_are_separate_entries(self):
        cache = ListingCache(ttl=60)

        cache.load(("floors", False), lambda: ["Ground"])
        cache.load(("floors", True), lambda: ["Ground", "Closed wing"])

        assert ("floors", False) in cache
        assert ("floors", True) in cache
        assert len(cache) == 2

    def test_empty_listing_is_cached(self):
        cache = ListingCache(ttl=60)
        loader, calls = _counting_loader([])

        cache.load(("rooms",), loader)
        cache.load(("rooms",), loader)

        assert len(calls) == 1

    def test_entries_expire_after_ttl(self):
        cache = ListingCache(ttl=1)
        loader, calls = _counting_loader(["Huddle"])
        cache.load(("rooms",), loader)

        time.sleep(1.1)
        cache.load(("rooms",), loader)

        assert len(calls) == 2

    def test_invalidate_drops_everything(self):
        """A topology write must not leave any stale listing behind."""
        cache = ListingCache(ttl=60)
        for key in (("floors", False), ("rooms", None, None), ("floor-rooms", "f-1", False)):
            cache.load(key, list)

        cache.invalidate()

        assert len(cache) == 0

    def test_maxsize_evicts(self):
        cache = ListingCache(ttl=60, maxsize=2)

        for n in range(3):
            cache.load(("rooms", n), lambda: ["x"])

        assert len(cache) == 2
        assert ("rooms", 2) in cache
