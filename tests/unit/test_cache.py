# -*- coding: utf-8 -*-

"""
Unit tests for TokenCache.
Verifies freshness, oldest-first eviction and statistics.
"""

import pytest

from zai.cache import CachedToken, TokenCache


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestTokenCacheBasics:
    """Tests for get/put."""

    def test_put_then_get(self, clock):
        """
        What it does: Stores and reads back a token.
        Purpose: Basic cache hit.
        """
        cache = TokenCache(cache_ttl=10, clock=clock)
        cache.put("a.b", "token-1")

        assert cache.get("a.b") == "token-1"
        assert cache.size == 1
        assert len(cache) == 1

    def test_miss_returns_none(self, clock):
        """
        What it does: Reads an unknown key.
        Purpose: Misses are None, not errors.
        """
        cache = TokenCache(clock=clock)
        assert cache.get("missing") is None

    def test_entry_fresh_at_exact_ttl(self, clock):
        """
        What it does: Reads an entry exactly cache_ttl seconds old.
        Purpose: Freshness is age <= TTL.
        """
        cache = TokenCache(cache_ttl=10, clock=clock)
        cache.put("a.b", "token")

        clock.now += 10
        assert cache.get("a.b") == "token"

        clock.now += 0.001
        assert cache.get("a.b") is None

    def test_stale_entry_is_kept_until_swept(self, clock):
        """
        What it does: Lets an entry go stale without sweeping.
        Purpose: Stale entries are skipped on read, removed only by clear_expired().
        """
        cache = TokenCache(cache_ttl=10, clock=clock)
        cache.put("a.b", "token")
        clock.now += 11

        assert cache.get("a.b") is None
        assert cache.size == 1
        assert cache.clear_expired() == 1
        assert cache.size == 0

    def test_overwrite_refreshes_creation_time(self, clock):
        """
        What it does: Puts the same key twice.
        Purpose: Re-signing an existing key replaces the entry in place.
        """
        cache = TokenCache(cache_ttl=10, clock=clock)
        cache.put("a.b", "old")
        clock.now += 8
        cache.put("a.b", "new")
        clock.now += 8

        assert cache.get("a.b") == "new"
        assert cache.size == 1

    def test_invalid_max_size(self):
        """
        What it does: Creates a cache with max_size 0.
        Purpose: A cache that can hold nothing is a configuration mistake.
        """
        with pytest.raises(ValueError):
            TokenCache(max_size=0)


class TestTokenCacheEviction:
    """Tests for the size bound."""

    def test_evicts_oldest_entry(self, clock):
        """
        What it does: Inserts a third key into a cache of two.
        Purpose: The entry with the oldest creation time goes first.
        """
        cache = TokenCache(cache_ttl=100, max_size=2, clock=clock)
        cache.put("first", "1")
        clock.now += 1
        cache.put("second", "2")
        clock.now += 1

        print("Action: Inserting third key into full cache...")
        cache.put("third", "3")

        assert cache.get("first") is None
        assert cache.get("second") == "2"
        assert cache.get("third") == "3"

    def test_updating_existing_key_does_not_evict(self, clock):
        """
        What it does: Re-puts a key while the cache is full.
        Purpose: Only new keys trigger eviction.
        """
        cache = TokenCache(cache_ttl=100, max_size=2, clock=clock)
        cache.put("first", "1")
        cache.put("second", "2")

        cache.put("first", "1b")

        assert cache.size == 2
        assert cache.get("second") == "2"


class TestTokenCacheStats:
    """Tests for stats() and clear()."""

    def test_stats_snapshot(self, clock):
        """
        What it does: Reads statistics of a partly stale cache.
        Purpose: stats() reports size, bound, stale count and oldest age.
        """
        cache = TokenCache(cache_ttl=10, max_size=5, clock=clock)
        cache.put("old", "1")
        clock.now += 20
        cache.put("new", "2")

        stats = cache.stats()
        print(f"Stats: {stats}")

        assert stats == {"size": 2, "max_size": 5, "expired": 1, "oldest_age": 20.0}

    def test_stats_empty(self, clock):
        cache = TokenCache(clock=clock)
        assert cache.stats()["oldest_age"] is None

    def test_clear(self, clock):
        cache = TokenCache(clock=clock)
        cache.put("a", "1")
        cache.clear()
        assert cache.size == 0

    def test_cached_token_dataclass(self):
        entry = CachedToken(token="t", created_at=1.5)
        assert entry.token == "t"
        assert entry.created_at == 1.5
