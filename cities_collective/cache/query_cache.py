"""In-process query result cache with TTL expiry, scored eviction and pattern invalidation."""

import asyncio
import hashlib
import json
import logging
import re
import threading
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 5 * 60 * 1000
DEFAULT_MAX_SIZE = 1000
DEFAULT_SWEEP_INTERVAL_SECONDS = 5 * 60

# Rough per-entry footprint used for the memory estimate
ENTRY_SIZE_ESTIMATE_BYTES = 1024

_WHITESPACE = re.compile(r"\s+")

MISSING: Any = object()
"""Sentinel returned by :meth:`QueryCache.get` when a caller asks for it as default."""


class CacheKeyError(ValueError):
    """Query parameters could not be serialized into a cache key."""


class CacheEntry(BaseModel):
    key: str
    source: str
    data: Any = None
    timestamp: float
    created_at: float
    ttl: float
    hit_count: int = 0


class CacheStats(BaseModel):
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    invalidations: int = 0
    total_queries: int = 0
    hit_rate: float = 0.0
    # Estimate only: entries x ENTRY_SIZE_ESTIMATE_BYTES
    memory_usage: int = 0
    size: int = 0


def _key_source(query_text: str, params: Sequence[Any]) -> str:
    normalized = _WHITESPACE.sub(" ", query_text).strip()
    # Query text precedes params so patterns like "city.*42" match the source
    try:
        return json.dumps({"query": normalized, "params": list(params)}, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise CacheKeyError(f"Cannot derive cache key for {normalized!r}: {exc}") from exc


def derive_key(query_text: str, params: Sequence[Any] = ()) -> str:
    """Return a stable MD5 key for a query text and its parameters.

    Whitespace in *query_text* is collapsed so cosmetically different but
    equivalent queries share a key.

    Raises:
        CacheKeyError: If *params* are not JSON-serializable.
    """
    return hashlib.md5(_key_source(query_text, params).encode("utf-8")).hexdigest()


def _json_default(obj: object) -> object:
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    return str(obj)


def _stringify(data: object) -> str:
    return json.dumps(data, default=_json_default)


class QueryCache:
    """Keyed result cache for data-access reads.

    Entries expire ``ttl`` ms after insertion. When the store is full, the
    entries with the lowest ``hit_count + timestamp_ms / 1e6`` score are
    evicted. Writers drop stale entries with :meth:`invalidate`.

    Args:
        max_size: Maximum number of entries kept after an eviction pass.
        clock: Callable returning the current time in seconds. Injected in tests.
        default_ttl_ms: TTL used when ``set`` or ``cached_query`` get none.
        single_flight: Share one in-flight fetch between concurrent misses.
        log_sweeps: Log non-empty sweeps at INFO instead of DEBUG.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        default_ttl_ms: float = DEFAULT_TTL_MS,
        clock: Callable[[], float] = time.time,
        single_flight: bool = False,
        log_sweeps: bool = False,
    ) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self.max_size = max_size
        self.default_ttl_ms = self._check_ttl(default_ttl_ms)
        self.single_flight = single_flight
        self.log_sweeps = log_sweeps
        self._clock = clock
        self._store: dict[str, CacheEntry] = {}
        self._stats = CacheStats()
        self._lock = threading.RLock()
        self._in_flight: dict[str, asyncio.Future] = {}
        self._sweep_task: asyncio.Task | None = None
        self.sweep_interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS

    def _now_ms(self) -> float:
        return self._clock() * 1000

    @staticmethod
    def _check_ttl(ttl_ms: float) -> float:
        if ttl_ms <= 0:
            raise ValueError(f"ttl_ms must be positive, got {ttl_ms}")
        return ttl_ms

    @staticmethod
    def _is_expired(entry: CacheEntry, now_ms: float) -> bool:
        return now_ms - entry.created_at > entry.ttl

    def _update_stats(self) -> None:
        s = self._stats
        s.total_queries = s.hits + s.misses
        s.hit_rate = (s.hits / s.total_queries) * 100 if s.total_queries > 0 else 0.0
        s.size = len(self._store)
        s.memory_usage = s.size * ENTRY_SIZE_ESTIMATE_BYTES

    # ── Read / write ──────────────────────────────────────────────────────

    def get(self, query_text: str, params: Sequence[Any] = (), default: Any = None) -> Any:
        """Return the cached value, or *default* when absent or expired."""
        key = derive_key(query_text, params)
        with self._lock:
            now = self._now_ms()
            entry = self._store.get(key)
            if entry is None or self._is_expired(entry, now):
                self._stats.misses += 1
                if entry is not None:
                    del self._store[key]
                self._update_stats()
                return default

            entry.hit_count += 1
            entry.timestamp = now
            self._stats.hits += 1
            self._update_stats()
            return entry.data

    def set(
        self,
        query_text: str,
        params: Sequence[Any],
        value: Any,
        ttl_ms: float | None = None,
    ) -> None:
        """Store *value*, replacing any entry for the same key."""
        ttl_ms = self.default_ttl_ms if ttl_ms is None else self._check_ttl(ttl_ms)
        source = _key_source(query_text, params)
        key = hashlib.md5(source.encode("utf-8")).hexdigest()
        with self._lock:
            if key not in self._store and len(self._store) >= self.max_size:
                self._evict_lowest_scored()
            now = self._now_ms()
            self._store[key] = CacheEntry(
                key=key,
                source=source,
                data=value,
                timestamp=now,
                created_at=now,
                ttl=ttl_ms,
            )
            self._update_stats()

    # ── Eviction ──────────────────────────────────────────────────────────

    def _evict_lowest_scored(self) -> None:
        """Drop the lowest scored entries until one slot below ``max_size`` is free."""
        if not self._store:
            return

        scored: list[tuple[float, str]] = []
        for key, entry in self._store.items():
            try:
                scored.append((entry.hit_count + entry.timestamp / 1_000_000, key))
            except (AttributeError, TypeError):
                logger.warning("Skipping malformed cache entry %s during eviction", key)
        scored.sort()

        to_remove = len(self._store) - self.max_size + 1
        for _, key in scored[:to_remove]:
            del self._store[key]
            self._stats.evictions += 1
        self._update_stats()

    def sweep(self) -> int:
        """Remove every expired entry. Returns the number evicted."""
        evicted = 0
        with self._lock:
            now = self._now_ms()
            for key, entry in list(self._store.items()):
                try:
                    expired = self._is_expired(entry, now)
                except (AttributeError, TypeError):
                    logger.warning("Skipping malformed cache entry %s during sweep", key)
                    continue
                if expired:
                    del self._store[key]
                    evicted += 1
            self._stats.evictions += evicted
            self._update_stats()

        if evicted:
            level = logging.INFO if self.log_sweeps else logging.DEBUG
            logger.log(level, "Query cache sweep evicted %d expired entries", evicted)
        return evicted

    # ── Invalidation ──────────────────────────────────────────────────────

    def invalidate(self, pattern: str) -> int:
        """Remove entries whose key, key source or data matches *pattern*.

        *pattern* is a case-insensitive regular expression.

        Returns:
            Number of entries removed.
        """
        regex = re.compile(pattern, re.IGNORECASE)
        removed = 0
        with self._lock:
            for key, entry in list(self._store.items()):
                try:
                    matched = bool(
                        regex.search(entry.key)
                        or regex.search(entry.source)
                        or regex.search(_stringify(entry.data))
                    )
                except (AttributeError, TypeError, ValueError):
                    logger.warning("Skipping unreadable cache entry %s during invalidation", key)
                    continue
                if matched:
                    del self._store[key]
                    removed += 1
            self._stats.invalidations += removed
            self._update_stats()
        return removed

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._stats.invalidations += len(self._store)
            self._store.clear()
            self._update_stats()

    # ── Stats ─────────────────────────────────────────────────────────────

    def get_stats(self) -> CacheStats:
        """Return a snapshot of the cache counters."""
        with self._lock:
            return self._stats.model_copy()

    def size(self) -> int:
        with self._lock:
            return len(self._store)

    # ── Cached query ──────────────────────────────────────────────────────

    async def cached_query(
        self,
        fetch_fn: Callable[[], Awaitable[Any]],
        cache_key_text: str,
        params: Sequence[Any] = (),
        ttl_ms: float | None = None,
    ) -> Any:
        """Return the cached result for the key, or await *fetch_fn* and cache it.

        Errors from *fetch_fn* propagate unchanged and nothing is cached.
        """
        ttl_ms = self.default_ttl_ms if ttl_ms is None else self._check_ttl(ttl_ms)
        cached = self.get(cache_key_text, params, default=MISSING)
        if cached is not MISSING:
            return cached

        if not self.single_flight:
            result = await fetch_fn()
            self.set(cache_key_text, params, result, ttl_ms)
            return result

        key = derive_key(cache_key_text, params)
        pending = self._in_flight.get(key)
        if pending is not None:
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                # The leader was cancelled, not us: fetch on our own
                task = asyncio.current_task()
                if pending.cancelled() and task is not None and task.cancelling() == 0:
                    return await self.cached_query(fetch_fn, cache_key_text, params, ttl_ms)
                raise

        future = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            result = await fetch_fn()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Mark retrieved so an unshared failure is not reported again at GC
            future.exception()
            raise
        finally:
            self._in_flight.pop(key, None)

        future.set_result(result)
        self.set(cache_key_text, params, result, ttl_ms)
        return result

    # ── Lifecycle ─────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def start(self, interval_seconds: float | None = None) -> None:
        """Start the periodic expiry sweep on the running event loop."""
        if self.running:
            return
        if interval_seconds is not None:
            if interval_seconds <= 0:
                raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
            self.sweep_interval = interval_seconds
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())
        logger.debug("Query cache sweep started (every %ss)", self.sweep_interval)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep()
            except Exception:  # noqa: BLE001
                logger.exception("Query cache sweep failed")

    async def stop(self) -> None:
        """Cancel the periodic sweep, if running."""
        task = self._sweep_task
        self._sweep_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def close(self) -> None:
        """Stop the sweep and drop every entry."""
        await self.stop()
        self.clear()
