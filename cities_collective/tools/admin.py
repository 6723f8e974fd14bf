"""Admin tools for inspecting and resetting the query cache."""

import logging

from fastmcp import FastMCP

from cities_collective.cache.reporting import log_cache_stats
from cities_collective.server import get_cache
from cities_collective.tools.error_messages import safe_tool_wrapper

logger = logging.getLogger(__name__)


def register_admin_tools(mcp: FastMCP) -> None:
    """Register cache administration tools on the MCP server."""

    @mcp.tool
    async def cache_stats() -> str:
        """Show query cache hit rate, counters and estimated memory usage."""

        async def _run() -> str:
            report = log_cache_stats(get_cache())
            return "\n".join(f"{name}: {value}" for name, value in report.items())

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def clear_cache() -> str:
        """Drop every cached query result."""

        async def _run() -> str:
            cache = get_cache()
            size = cache.size()
            cache.clear()
            logger.info("Query cache cleared (%d entries)", size)
            return f"Cache cleared ({size} entries removed)."

        return await safe_tool_wrapper(_run)

    @mcp.tool
    async def invalidate_cache(pattern: str) -> str:
        """Drop cached results whose key or data matches a regular expression.

        Args:
            pattern: Case-insensitive regular expression, e.g. "city.*42".
        """

        async def _run() -> str:
            removed = get_cache().invalidate(pattern)
            logger.info("Invalidated %d cache entries matching %r", removed, pattern)
            return f"Invalidated {removed} cache entries matching '{pattern}'."

        return await safe_tool_wrapper(_run)
