"""
Unit tests for the CRUD query cache.
"""

import pytest
from unittest.mock import AsyncMock

from resource_access.app.caching.query_cache import QueryCache, make_query_key, stable_serialize


class TestStableSerialize:

    def test_key_order_does_not_matter(self):
        assert stable_serialize({"b": 1, "a": 2}) == stable_serialize({"a": 2, "b": 1})

    def test_none_values_are_kept(self):
        assert stable_serialize({"q": None}) != stable_serialize({})

    def test_nested_values(self):
        assert stable_serialize({"f": {"z": [1, 2], "a": True}}) == '{"f":{"a":true,"z":[1,2]}}'


class TestQueryCache:
    """Test cases for QueryCache."""

    @pytest.fixture
    def cache(self, clock):
        return QueryCache(clock=clock)

    @pytest.mark.asyncio
    async def test_fetch_miss_then_hit(self, cache):
        key = make_query_key("jobs", "list", {})
        fetcher = AsyncMock(return_value=["a"])

        assert await cache.fetch(key, fetcher, 60.0) == ["a"]
        assert await cache.fetch(key, fetcher, 60.0) == ["a"]
        fetcher.assert_awaited_once_with(False)

    @pytest.mark.asyncio
    async def test_fetch_after_stale_time_refetches(self, cache, clock):
        key = make_query_key("jobs", "list", {})
        fetcher = AsyncMock(side_effect=[["a"], ["b"]])

        await cache.fetch(key, fetcher, 60.0)
        clock.advance(61.0)

        assert await cache.fetch(key, fetcher, 60.0) == ["b"]
        assert fetcher.await_count == 2

    @pytest.mark.asyncio
    async def test_invalidated_entry_refetches_with_refresh_flag(self, cache):
        key = make_query_key("jobs", "list", {"page": 1})
        fetcher = AsyncMock(side_effect=[["a"], ["b"]])
        await cache.fetch(key, fetcher, 60.0)

        marked = cache.invalidate(["jobs"])

        assert marked == 1
        assert cache.peek(key).stale is True
        assert cache.get_data(key) == ["a"]
        assert await cache.fetch(key, fetcher, 60.0) == ["b"]
        fetcher.assert_awaited_with(True)
        assert cache.peek(key).stale is False
    @pytest.mark.asyncio
    async def test_invalidate_during_fetch_stores_stale(self, cache):
        key = make_query_key("jobs", "list", {})
        other = make_query_key("printers", "list", {})

        async def fetcher(refresh):
            cache.invalidate(["jobs"])
            return ["old"]

        assert await cache.fetch(key, fetcher, 60.0) == ["old"]
        assert await cache.fetch(other, AsyncMock(return_value=["p"]), 60.0) == ["p"]

        assert cache.peek(key).stale is True
        assert cache.peek(other).stale is False
        assert cache.is_fresh(key, 60.0) is False

    @pytest.mark.asyncio
    async def test_remove_during_fetch_stores_stale(self, cache):
        key = make_query_key("jobs", "detail", 1)

        async def fetcher(refresh):
            cache.remove(key)
            return {"id": 1}

        await cache.fetch(key, fetcher, 60.0)

        assert cache.peek(key).stale is True


    def test_invalidate_respects_root_and_exclude(self, cache):
        jobs_list = make_query_key("jobs", "list", {})
        jobs_detail = make_query_key("jobs", "detail", 1)
        inks_list = make_query_key("inks", "list", {})
        for key in (jobs_list, jobs_detail, inks_list):
            cache.set_data(key, "value")

        cache.invalidate(["jobs"], exclude=[jobs_detail])

        assert cache.peek(jobs_list).stale is True
        assert cache.peek(jobs_detail).stale is False
        assert cache.peek(inks_list).stale is False

    def test_set_data_is_fresh(self, cache):
        key = make_query_key("jobs", "detail", 9)
        cache.set_data(key, {"id": 9})

        assert cache.is_fresh(key, 60.0)
        assert cache.keys("jobs") == [key]

    def test_remove_and_clear(self, cache):
        key = make_query_key("jobs", "detail", 9)
        cache.set_data(key, {"id": 9})

        cache.remove(key)
        assert cache.peek(key) is None

        cache.set_data(key, {"id": 9})
        cache.clear()
        assert len(cache) == 0
