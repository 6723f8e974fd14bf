import logging
import sqlite3
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import Any

import aiosqlite

from cities_collective.cache.invalidation import (
    invalidate_city_cache,
    invalidate_community_cache,
    invalidate_user_cache,
)
from cities_collective.cache.query_cache import QueryCache
from cities_collective.models.city import City, CityUpdate
from cities_collective.models.community import Comment, CommunityStats
from cities_collective.models.user import User
from cities_collective.storage.resilience import (
    CityNotFoundError,
    UserNotFoundError,
    classify_sqlite_error,
    resilient_query,
)

logger = logging.getLogger(__name__)

# TTLs (ms) per cached read
CITY_TTL_MS = 5 * 60 * 1000
LISTING_TTL_MS = 2 * 60 * 1000
USER_TTL_MS = 10 * 60 * 1000
COMMENTS_TTL_MS = 60 * 1000
STATS_TTL_MS = 10 * 60 * 1000

_CITY_SELECT = """
    SELECT c.*, u.username,
           (SELECT COUNT(*) FROM likes l WHERE l.city_id = c.id) AS like_count,
           (SELECT COUNT(*) FROM favorites f WHERE f.city_id = c.id) AS favorite_count,
           (SELECT COUNT(*) FROM comments m WHERE m.city_id = c.id) AS comment_count
    FROM cities c
    JOIN users u ON u.id = c.user_id
"""


class DatabaseManager:
    """Async SQLite database manager with typed repository methods.

    All SQL in the application lives in this class. Reads go through the
    injected :class:`QueryCache`; writes invalidate the entries they make
    stale. Without a cache every read hits the database.
    """

    def __init__(self, db_path: Path | str, cache: QueryCache | None = None) -> None:
        self.db_path = str(db_path)
        self.cache = cache
        self.connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL mode and foreign keys, execute schema."""
        self.connection = await aiosqlite.connect(self.db_path)
        self.connection.row_factory = aiosqlite.Row
        schema_path = Path(__file__).parent / "schema.sql"
        schema_sql = schema_path.read_text()
        await self.connection.executescript(schema_sql)
        await self.connection.execute("PRAGMA journal_mode=WAL")
        await self.connection.execute("PRAGMA foreign_keys=ON")
        await self.connection.commit()
        logger.info(f"Database initialized at {self.db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self.connection:
            await self.connection.close()
            self.connection = None

    async def __aenter__(self) -> "DatabaseManager":
        await self.initialize()
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: Exception | None, exc_tb: object
    ) -> None:
        await self.close()

    @resilient_query
    async def execute(self, sql: str, params: tuple = ()) -> aiosqlite.Cursor:
        """Execute a single SQL statement and commit."""
        assert self.connection is not None
        try:
            cursor = await self.connection.execute(sql, params)
            await self.connection.commit()
        except sqlite3.Error as exc:
            raise classify_sqlite_error(exc) from exc
        return cursor

    @resilient_query
    async def fetch_one(self, sql: str, params: tuple = ()) -> dict | None:
        """Execute a query and return a single row as a dict, or None."""
        assert self.connection is not None
        try:
            cursor = await self.connection.execute(sql, params)
            row = await cursor.fetchone()
        except sqlite3.Error as exc:
            raise classify_sqlite_error(exc) from exc
        if row is None:
            return None
        return dict(row)

    @resilient_query
    async def fetch_all(self, sql: str, params: tuple = ()) -> list[dict]:
        """Execute a query and return all rows as list of dicts."""
        assert self.connection is not None
        try:
            cursor = await self.connection.execute(sql, params)
            rows = await cursor.fetchall()
        except sqlite3.Error as exc:
            raise classify_sqlite_error(exc) from exc
        return [dict(r) for r in rows]

    async def _cached(
        self,
        fetch: Callable[[], Awaitable[Any]],
        key_text: str,
        params: Sequence[Any],
        ttl_ms: int,
    ) -> Any:
        if self.cache is None:
            return await fetch()
        return await self.cache.cached_query(fetch, key_text, params, ttl_ms)

    # ── Users ─────────────────────────────────────────────────────────────

    def _row_to_user(self, row: dict) -> User:
        return User(
            id=row["id"],
            username=row["username"],
            email=row["email"],
            name=row["name"],
            is_admin=bool(row["is_admin"]),
            created_at=row["created_at"],
        )

    async def create_user(self, user: User) -> User:
        cursor = await self.execute(
            "INSERT INTO users (username, email, name, is_admin) VALUES (?, ?, ?, ?)",
            (user.username, user.email, user.name, int(user.is_admin)),
        )
        if self.cache is not None:
            invalidate_user_cache(self.cache)
        row = await self.fetch_one("SELECT * FROM users WHERE id = ?", (cursor.lastrowid,))
        assert row is not None
        return self._row_to_user(row)

    async def get_user_by_id(self, user_id: int) -> User | None:
        async def fetch() -> User | None:
            row = await self.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
            return self._row_to_user(row) if row else None

        return await self._cached(fetch, "user_by_id", [user_id], USER_TTL_MS)

    async def get_total_user_count(self) -> int:
        async def fetch() -> int:
            row = await self.fetch_one("SELECT COUNT(*) AS n FROM users")
            return row["n"] if row else 0

        return await self._cached(fetch, "total_user_count", [], STATS_TTL_MS)

    # ── Cities ────────────────────────────────────────────────────────────

    def _row_to_city(self, row: dict) -> City:
        """Convert a database row dict to a City model."""
        return City(
            id=row["id"],
            user_id=row["user_id"],
            city_name=row["city_name"],
            map_name=row["map_name"],
            population=row["population"],
            money=row["money"],
            xp=row["xp"],
            theme=row["theme"],
            game_mode=row["game_mode"],
            description=row["description"],
            username=row.get("username"),
            like_count=row.get("like_count", 0),
            favorite_count=row.get("favorite_count", 0),
            comment_count=row.get("comment_count", 0),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    async def _require_city(self, city_id: int) -> dict:
        row = await self.fetch_one("SELECT id, user_id FROM cities WHERE id = ?", (city_id,))
        if row is None:
            raise CityNotFoundError(city_id)
        return row

    async def _require_user(self, user_id: int) -> None:
        row = await self.fetch_one("SELECT id FROM users WHERE id = ?", (user_id,))
        if row is None:
            raise UserNotFoundError(user_id)

    async def create_city(self, city: City) -> City:
        await self._require_user(city.user_id)
        cursor = await self.execute(
            """INSERT INTO cities
               (user_id, city_name, map_name, population, money, xp, theme,
                game_mode, description)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                city.user_id,
                city.city_name,
                city.map_name,
                city.population,
                city.money,
                city.xp,
                city.theme,
                city.game_mode,
                city.description,
            ),
        )
        if self.cache is not None:
            invalidate_city_cache(self.cache)
            invalidate_user_cache(self.cache, city.user_id)
        created = await self.get_city_by_id(cursor.lastrowid)
        assert created is not None
        return created

    async def get_city_by_id(self, city_id: int) -> City | None:
        async def fetch() -> City | None:
            row = await self.fetch_one(f"{_CITY_SELECT} WHERE c.id = ?", (city_id,))
            return self._row_to_city(row) if row else None

        return await self._cached(fetch, "city_by_id", [city_id], CITY_TTL_MS)

    async def update_city(self, city_id: int, update: CityUpdate) -> City:
        """Apply the non-``None`` fields of *update* and return the fresh city.

        Raises:
            CityNotFoundError: If the city does not exist.
        """
        await self._require_city(city_id)
        fields = update.model_dump(exclude_none=True)
        if fields:
            assignments = ", ".join(f"{name} = ?" for name in fields)
            await self.execute(
                f"UPDATE cities SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (*fields.values(), city_id),
            )
            if self.cache is not None:
                invalidate_city_cache(self.cache, city_id)
        city = await self.get_city_by_id(city_id)
        assert city is not None
        return city

    async def delete_city(self, city_id: int) -> None:
        row = await self._require_city(city_id)
        await self.execute("DELETE FROM cities WHERE id = ?", (city_id,))
        if self.cache is not None:
            # Totals and listings change too
            invalidate_city_cache(self.cache)
            invalidate_user_cache(self.cache, row["user_id"])

    async def get_recent_cities(self, limit: int = 12) -> list[City]:
        async def fetch() -> list[City]:
            rows = await self.fetch_all(
                f"{_CITY_SELECT} ORDER BY c.created_at DESC, c.id DESC LIMIT ?", (limit,)
            )
            return [self._row_to_city(r) for r in rows]

        return await self._cached(fetch, "recent_cities", [limit], LISTING_TTL_MS)

    async def get_popular_cities(self, limit: int = 12) -> list[City]:
        async def fetch() -> list[City]:
            rows = await self.fetch_all(
                f"{_CITY_SELECT} ORDER BY like_count DESC, c.id DESC LIMIT ?", (limit,)
            )
            return [self._row_to_city(r) for r in rows]

        return await self._cached(fetch, "popular_cities", [limit], CITY_TTL_MS)

    async def search_cities(
        self, query: str | None = None, limit: int = 12, offset: int = 0
    ) -> list[City]:
        """Search cities by name, map name or creator username.

        Every whitespace-separated word in *query* must match one of the
        three fields (case-insensitive). Results are newest first.
        """
        words = (query or "").lower().split()

        async def fetch() -> list[City]:
            conditions: list[str] = []
            params: list[Any] = []
            for word in words:
                conditions.append(
                    "(LOWER(c.city_name) LIKE ? OR LOWER(c.map_name) LIKE ? "
                    "OR LOWER(u.username) LIKE ?)"
                )
                params.extend([f"%{word}%"] * 3)
            where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
            rows = await self.fetch_all(
                f"{_CITY_SELECT}{where} ORDER BY c.created_at DESC, c.id DESC LIMIT ? OFFSET ?",
                (*params, limit, offset),
            )
            return [self._row_to_city(r) for r in rows]

        return await self._cached(
            fetch, "search_cities", [" ".join(words), limit, offset], LISTING_TTL_MS
        )

    async def get_cities_by_user(self, user_id: int) -> list[City]:
        async def fetch() -> list[City]:
            rows = await self.fetch_all(
                f"{_CITY_SELECT} WHERE c.user_id = ? ORDER BY c.created_at DESC, c.id DESC",
                (user_id,),
            )
            return [self._row_to_city(r) for r in rows]

        return await self._cached(fetch, "cities_by_user", [user_id], CITY_TTL_MS)

    async def get_city_count_by_user(self, user_id: int) -> int:
        async def fetch() -> int:
            row = await self.fetch_one(
                "SELECT COUNT(*) AS n FROM cities WHERE user_id = ?", (user_id,)
            )
            return row["n"] if row else 0

        return await self._cached(fetch, "city_count_by_user", [user_id], CITY_TTL_MS)

    async def get_total_city_count(self) -> int:
        async def fetch() -> int:
            row = await self.fetch_one("SELECT COUNT(*) AS n FROM cities")
            return row["n"] if row else 0

        return await self._cached(fetch, "total_city_count", [], STATS_TTL_MS)

    # ── Likes, Favorites & Comments ───────────────────────────────────────

    async def _toggle(self, table: str, city_id: int, user_id: int) -> bool:
        await self._require_city(city_id)
        await self._require_user(user_id)
        existing = await self.fetch_one(
            f"SELECT 1 FROM {table} WHERE user_id = ? AND city_id = ?", (user_id, city_id)
        )
        if existing:
            await self.execute(
                f"DELETE FROM {table} WHERE user_id = ? AND city_id = ?", (user_id, city_id)
            )
        else:
            await self.execute(
                f"INSERT INTO {table} (user_id, city_id) VALUES (?, ?)", (user_id, city_id)
            )
        if self.cache is not None:
            invalidate_community_cache(self.cache)
            invalidate_city_cache(self.cache, city_id)
        return not existing

    async def toggle_like(self, city_id: int, user_id: int) -> bool:
        """Like or unlike a city. Returns True if the city is now liked."""
        return await self._toggle("likes", city_id, user_id)

    async def toggle_favorite(self, city_id: int, user_id: int) -> bool:
        """Favorite or unfavorite a city. Returns True if it is now a favorite."""
        return await self._toggle("favorites", city_id, user_id)

    def _row_to_comment(self, row: dict) -> Comment:
        return Comment(
            id=row["id"],
            city_id=row["city_id"],
            user_id=row["user_id"],
            username=row.get("username"),
            content=row["content"],
            created_at=row["created_at"],
        )

    async def add_comment(self, city_id: int, user_id: int, content: str) -> Comment:
        content = content.strip()
        if not content:
            raise ValueError("Comment content cannot be empty")
        await self._require_city(city_id)
        await self._require_user(user_id)
        cursor = await self.execute(
            "INSERT INTO comments (city_id, user_id, content) VALUES (?, ?, ?)",
            (city_id, user_id, content),
        )
        if self.cache is not None:
            invalidate_community_cache(self.cache)
            invalidate_city_cache(self.cache, city_id)
        row = await self.fetch_one(
            """SELECT m.*, u.username FROM comments m
               JOIN users u ON u.id = m.user_id WHERE m.id = ?""",
            (cursor.lastrowid,),
        )
        assert row is not None
        return self._row_to_comment(row)

    async def get_comments(self, city_id: int, limit: int = 50) -> list[Comment]:
        async def fetch() -> list[Comment]:
            rows = await self.fetch_all(
                """SELECT m.*, u.username FROM comments m
                   JOIN users u ON u.id = m.user_id
                   WHERE m.city_id = ?
                   ORDER BY m.created_at DESC, m.id DESC LIMIT ?""",
                (city_id, limit),
            )
            return [self._row_to_comment(r) for r in rows]

        return await self._cached(fetch, "comments_by_city", [city_id, limit], COMMENTS_TTL_MS)

    # ── Community Stats ───────────────────────────────────────────────────

    async def get_community_stats(self) -> CommunityStats:
        async def fetch() -> CommunityStats:
            row = await self.fetch_one(
                """SELECT
                       (SELECT COUNT(*) FROM cities) AS total_cities,
                       (SELECT COUNT(*) FROM users) AS total_users,
                       (SELECT COUNT(*) FROM likes) AS total_likes,
                       (SELECT COUNT(*) FROM comments) AS total_comments,
                       (SELECT COUNT(*) FROM favorites) AS total_favorites,
                       (SELECT COALESCE(SUM(population), 0) FROM cities) AS total_population"""
            )
            return CommunityStats(**row) if row else CommunityStats()

        return await self._cached(fetch, "community_stats", [], STATS_TTL_MS)
