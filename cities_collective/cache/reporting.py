"""Cache statistics reporting and warm-up."""

import asyncio
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from cities_collective.cache.query_cache import CacheStats, QueryCache

if TYPE_CHECKING:
    from cities_collective.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

DEFAULT_REPORT_INTERVAL_SECONDS = 10 * 60


def format_cache_stats(stats: CacheStats) -> dict:
    """Render stats for display: percentages, KB and a timestamp."""
    return {
        "hit_rate": f"{stats.hit_rate:.2f}%",
        "total_queries": stats.total_queries,
        "hits": stats.hits,
        "misses": stats.misses,
        "evictions": stats.evictions,
        "invalidations": stats.invalidations,
        "cache_size": stats.size,
        "memory_usage": f"{stats.memory_usage / 1024:.2f} KB",
        "timestamp": datetime.now(UTC).isoformat(),
    }


def log_cache_stats(cache: QueryCache) -> dict:
    """Log the current cache statistics at INFO and return them."""
    report = format_cache_stats(cache.get_stats())
    logger.info("Query cache statistics: %s", report)
    return report


class StatsReporter:
    """Periodically logs cache statistics.

    Args:
        cache: Cache to report on.
        interval_seconds: Delay between reports.
    """

    def __init__(
        self, cache: QueryCache, interval_seconds: float = DEFAULT_REPORT_INTERVAL_SECONDS
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.cache = cache
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            log_cache_stats(self.cache)

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


async def warm_cache(db: "DatabaseManager") -> bool:
    """Preload frequently read aggregates. Returns False if warming failed.

    Warming is best-effort: a failure is logged and the cache stays cold.
    """
    logger.info("Warming query cache with frequently accessed data")
    try:
        await db.get_community_stats()
        await db.get_total_city_count()
        await db.get_total_user_count()
    except Exception:  # noqa: BLE001
        logger.exception("Cache warming failed")
        return False
    logger.info("Cache warming completed")
    return True
