import pytest

from cities_collective.cache.query_cache import QueryCache
from cities_collective.storage.database import DatabaseManager


class FakeClock:
    """Manually advanced clock returning seconds, like ``time.time``."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _set_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host settings from leaking into tests."""
    monkeypatch.delenv("CACHE_STATS_LOGGING", raising=False)
    monkeypatch.delenv("CACHE_SINGLE_FLIGHT", raising=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> QueryCache:
    return QueryCache(max_size=100, clock=clock)


@pytest.fixture
async def db():
    """In-memory SQLite database with schema applied and a real-clock cache."""
    manager = DatabaseManager(":memory:", cache=QueryCache(max_size=100))
    await manager.initialize()
    yield manager
    await manager.close()
