"""
Tests for the TTL document cache.

Run with: pytest tests/test_cache.py -v
"""

import pytest
from unittest.mock import Mock
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from agentdesk.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestTTLCache:
    """Tests for TTLCache."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def cache(self, clock):
        return TTLCache(max_entries=2, ttl_seconds=10, clock=clock)

    def test_get_set(self, cache):
        cache.set(1, ["doc"])
        assert cache.get(1) == ["doc"]
        assert cache.get(2, default="missing") == "missing"

    def test_expiry(self, cache, clock):
        """Entries vanish once their TTL has elapsed."""
        cache.set(1, "value")
        clock.now = 9.9
        assert 1 in cache
        clock.now = 10.0
        assert 1 not in cache
        assert len(cache) == 0

    def test_lru_eviction(self, cache):
        """The least recently used entry is evicted when full."""
        cache.set(1, "a")
        cache.set(2, "b")
        cache.get(1)
        cache.set(3, "c")

        assert 1 in cache
        assert 2 not in cache
        assert cache.stats()["evictions"] == 1

    def test_get_or_load_caches(self, cache):
        loader = Mock(return_value=["doc"])

        assert cache.get_or_load(1, loader) == ["doc"]
        assert cache.get_or_load(1, loader) == ["doc"]
        loader.assert_called_once()

    def test_loader_error_not_cached(self, cache):
        """A failing loader propagates and leaves nothing cached."""
        loader = Mock(side_effect=[ConnectionError("db down"), ["doc"]])

        with pytest.raises(ConnectionError):
            cache.get_or_load(1, loader)
        assert cache.get_or_load(1, loader) == ["doc"]

    def test_invalidate(self, cache):
        cache.set(1, "a")
        assert cache.invalidate(1) is True
        assert cache.invalidate(1) is False
        assert cache.get(1) is None

    def test_clear(self, cache):
        cache.set(1, "a")
        cache.set(2, "b")
        cache.clear()
        assert len(cache) == 0

    def test_stats(self, cache):
        cache.set(1, "a")
        cache.get(1)
        cache.get(2)

        stats = cache.stats()

        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5
        assert stats["size"] == 1

    def test_stats_empty(self, cache):
        assert cache.stats()["hit_rate"] is None

    @pytest.mark.parametrize("kwargs", [{"max_entries": 0}, {"ttl_seconds": 0}])
    def test_invalid_limits(self, kwargs):
        with pytest.raises(ValueError):
            TTLCache(**kwargs)
