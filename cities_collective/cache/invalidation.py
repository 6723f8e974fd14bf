"""Invalidation policy for writes to cities, users and community data.

Each helper drops the cached reads a write can make stale. Patterns are
matched against the key text the data-access layer caches under
(``city_by_id``, ``search_cities`` ...) and the cached data itself.
"""

import logging

from cities_collective.cache.query_cache import QueryCache

logger = logging.getLogger(__name__)


def _invalidate_all(cache: QueryCache, patterns: list[str], scope: str) -> int:
    removed = sum(cache.invalidate(p) for p in patterns)
    logger.debug("Invalidated %d cached %s entries", removed, scope)
    return removed


def invalidate_city_cache(cache: QueryCache, city_id: int | None = None) -> int:
    """Drop cached city reads, listings and stats. Returns the number removed."""
    patterns = [f"city.*{city_id}" if city_id else "city"]
    patterns += [
        "recent.*cities",
        "popular.*cities",
        "search_cities",
        "cities_by_user",
        "city_count_by_user",
        "stats",
    ]
    return _invalidate_all(cache, patterns, "city")


def invalidate_user_cache(cache: QueryCache, user_id: int | None = None) -> int:
    """Drop cached user reads and per-user city listings."""
    if user_id:
        patterns = [
            f"user.*{user_id}",
            f"cities_by_user.*{user_id}",
            f"city_count_by_user.*{user_id}",
        ]
    else:
        patterns = ["user", "cities_by_user", "city_count_by_user"]
    patterns += ["user_by_id", "stats"]
    return _invalidate_all(cache, patterns, "user")


def invalidate_community_cache(cache: QueryCache) -> int:
    """Drop reads affected by likes, favorites and comments."""
    patterns = [
        "likes",
        "comments",
        "favorites",
        "search_cities",
        "recent.*cities",
        "stats",
    ]
    return _invalidate_all(cache, patterns, "community")
