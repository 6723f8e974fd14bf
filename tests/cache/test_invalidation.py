"""Tests for the city / user / community invalidation policy."""

import pytest

from cities_collective.cache.invalidation import (
    invalidate_city_cache,
    invalidate_community_cache,
    invalidate_user_cache,
)
from cities_collective.cache.query_cache import QueryCache

TTL = 10 * 60 * 1000


@pytest.fixture
def seeded(cache: QueryCache) -> QueryCache:
    """A cache holding one entry per key text the data-access layer uses."""
    cache.set("city_by_id", [42], {"id": 42, "city_name": "Foo", "like_count": 0}, TTL)
    cache.set("city_by_id", [8], {"id": 8, "city_name": "Bar", "like_count": 3}, TTL)
    cache.set("recent_cities", [12], [], TTL)
    cache.set("popular_cities", [12], [], TTL)
    cache.set("search_cities", ["", 12, 0], [], TTL)
    cache.set("cities_by_user", [5], [], TTL)
    cache.set("city_count_by_user", [5], 2, TTL)
    cache.set("user_by_id", [5], {"id": 5, "username": "mayor"}, TTL)
    cache.set("user_by_id", [6], {"id": 6, "username": "planner"}, TTL)
    cache.set("comments_by_city", [42, 50], [], TTL)
    cache.set("community_stats", [], {"total_cities": 2}, TTL)
    return cache


def _present(cache: QueryCache, query: str, params: list) -> bool:
    return cache.get(query, params) is not None


class TestInvalidateCityCache:
    def test_scoped_to_city(self, seeded):
        removed = invalidate_city_cache(seeded, 42)

        assert not _present(seeded, "city_by_id", [42])
        assert not _present(seeded, "comments_by_city", [42, 50])
        assert not _present(seeded, "recent_cities", [12])
        assert not _present(seeded, "popular_cities", [12])
        assert not _present(seeded, "search_cities", ["", 12, 0])
        assert not _present(seeded, "cities_by_user", [5])
        assert not _present(seeded, "city_count_by_user", [5])
        assert not _present(seeded, "community_stats", [])
        assert _present(seeded, "city_by_id", [8])
        assert _present(seeded, "user_by_id", [5])
        assert removed == 8

    def test_unscoped_drops_every_city_entry(self, seeded):
        invalidate_city_cache(seeded)
        assert not _present(seeded, "city_by_id", [42])
        assert not _present(seeded, "city_by_id", [8])
        assert _present(seeded, "user_by_id", [5])
        assert _present(seeded, "user_by_id", [6])


class TestInvalidateUserCache:
    def test_scoped_to_user(self, seeded):
        invalidate_user_cache(seeded, 5)

        assert not _present(seeded, "user_by_id", [5])
        assert not _present(seeded, "cities_by_user", [5])
        assert not _present(seeded, "city_count_by_user", [5])
        assert not _present(seeded, "community_stats", [])
        assert _present(seeded, "city_by_id", [42])
        assert _present(seeded, "recent_cities", [12])

    def test_user_by_id_pattern_drops_all_users(self, seeded):
        invalidate_user_cache(seeded, 5)
        assert not _present(seeded, "user_by_id", [6])

    def test_unscoped(self, seeded):
        invalidate_user_cache(seeded)
        assert not _present(seeded, "user_by_id", [5])
        assert not _present(seeded, "cities_by_user", [5])
        assert _present(seeded, "city_by_id", [8])


class TestInvalidateCommunityCache:
    def test_drops_listings_comments_and_stats(self, seeded):
        invalidate_community_cache(seeded)

        assert not _present(seeded, "comments_by_city", [42, 50])
        assert not _present(seeded, "search_cities", ["", 12, 0])
        assert not _present(seeded, "recent_cities", [12])
        assert not _present(seeded, "community_stats", [])
        assert _present(seeded, "city_by_id", [42])
        assert _present(seeded, "popular_cities", [12])
        assert _present(seeded, "user_by_id", [5])

    def test_empty_cache(self, cache):
        assert invalidate_community_cache(cache) == 0
