import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from cities_collective.cache.query_cache import QueryCache
from cities_collective.cache.reporting import StatsReporter, warm_cache
from cities_collective.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

_db: DatabaseManager | None = None
_cache: QueryCache | None = None


def get_db() -> DatabaseManager:
    """Get the current DatabaseManager instance. Raises if not initialized."""
    if _db is None:
        raise RuntimeError("Database not initialized. Server lifespan has not started.")
    return _db


def get_cache() -> QueryCache:
    """Get the process query cache. Raises if not initialized."""
    if _cache is None:
        raise RuntimeError("Query cache not initialized. Server lifespan has not started.")
    return _cache


def _reset_db() -> None:
    """Clear the module-level DB reference. Used in tests."""
    global _db  # noqa: PLW0603
    _db = None


def _reset_cache() -> None:
    """Clear the module-level cache reference. Used in tests."""
    global _cache  # noqa: PLW0603
    _cache = None


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[dict]:
    """Manage the query cache, database and stats reporter for the server lifecycle."""
    global _db, _cache  # noqa: PLW0603
    from cities_collective.config import get_settings

    settings = get_settings()
    _cache = QueryCache(
        max_size=settings.cache_max_size,
        default_ttl_ms=settings.cache_default_ttl_ms,
        single_flight=settings.cache_single_flight,
        log_sweeps=settings.verbose_cache_logging,
    )
    _db = DatabaseManager(settings.db_path, cache=_cache)
    reporter: StatsReporter | None = None

    try:
        _cache.start(settings.cache_sweep_interval_seconds)
        await _db.initialize()
        logger.info("Database initialized")

        if settings.cache_warm_on_startup:
            await warm_cache(_db)

        if settings.cache_stats_logging:
            reporter = StatsReporter(_cache, settings.cache_stats_interval_seconds)
            reporter.start()

        yield {"db": _db, "cache": _cache}
    finally:
        if reporter is not None:
            await reporter.stop()
        await _cache.close()
        _cache = None
        await _db.close()
        _db = None
        logger.info("Database closed")


mcp = FastMCP("cities-collective", lifespan=app_lifespan)


@mcp.custom_route("/health", methods=["GET"])
async def health_check(request: Request | None) -> JSONResponse:
    return JSONResponse({"status": "ok"})


def setup_logging(log_level: str, data_dir: Path) -> None:
    """Configure logging with file rotation and console output.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        data_dir: Base data directory. Logs go to data_dir/logs/server.log.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Exact type check so FileHandler subclasses do not count as console
    if not any(type(h) is logging.StreamHandler for h in root_logger.handlers):
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(formatter)
        root_logger.addHandler(console)

    log_dir = data_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "server.log"

    if not any(isinstance(h, RotatingFileHandler) for h in root_logger.handlers):
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=3,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def initialize() -> FastMCP:
    """Set up directories, logging, and register tools. Returns the MCP server."""
    from cities_collective.config import get_settings

    settings = get_settings()

    settings.data_dir.mkdir(parents=True, exist_ok=True)
    (settings.data_dir / "logs").mkdir(exist_ok=True)

    setup_logging(settings.log_level, settings.data_dir)

    from cities_collective.tools.admin import register_admin_tools
    from cities_collective.tools.cities import register_city_tools
    from cities_collective.tools.community import register_community_tools
    from cities_collective.tools.users import register_user_tools

    register_city_tools(mcp)
    register_community_tools(mcp)
    register_user_tools(mcp)
    register_admin_tools(mcp)

    logger.info("Cities Collective server initialized")
    return mcp
