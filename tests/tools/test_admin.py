from unittest.mock import patch

from fastmcp import Client, FastMCP

from cities_collective.cache.query_cache import QueryCache
from cities_collective.tools.admin import register_admin_tools


async def _call(cache: QueryCache, tool: str, args: dict) -> str:
    test_mcp = FastMCP("test")
    register_admin_tools(test_mcp)
    with patch("cities_collective.tools.admin.get_cache", return_value=cache):
        async with Client(test_mcp) as client:
            result = await client.call_tool(tool, args)
    return str(result)


class TestCacheStats:
    async def test_reports_counters(self, cache):
        cache.set("city_by_id", [1], {"id": 1}, 60_000)
        cache.get("city_by_id", [1])
        cache.get("city_by_id", [2])
        text = await _call(cache, "cache_stats", {})
        assert "hit_rate: 50.00%" in text
        assert "cache_size: 1" in text
        assert "memory_usage: 1.00 KB" in text


class TestClearCache:
    async def test_clears(self, cache):
        cache.set("a", [], 1, 60_000)
        cache.set("b", [], 2, 60_000)
        text = await _call(cache, "clear_cache", {})
        assert "2 entries removed" in text
        assert cache.size() == 0


class TestInvalidateCache:
    async def test_invalidates_matching(self, cache):
        cache.set("city_by_id", [42], {"id": 42}, 60_000)
        cache.set("user_by_id", [1], {"id": 1}, 60_000)
        text = await _call(cache, "invalidate_cache", {"pattern": "city.*42"})
        assert "Invalidated 1 cache entries" in text
        assert cache.size() == 1

    async def test_bad_pattern_friendly_message(self, cache):
        text = await _call(cache, "invalidate_cache", {"pattern": "city("})
        assert "Invalid pattern" in text
        assert cache.size() == 0


class TestCacheNotInitialized:
    async def test_tools_return_friendly_message(self):
        test_mcp = FastMCP("test")
        register_admin_tools(test_mcp)
        with patch(
            "cities_collective.tools.admin.get_cache",
            side_effect=RuntimeError("Query cache not initialized."),
        ):
            async with Client(test_mcp) as client:
                stats = str(await client.call_tool("cache_stats", {}))
                cleared = str(await client.call_tool("clear_cache", {}))
        assert "Something went wrong" in stats
        assert "Something went wrong" in cleared
