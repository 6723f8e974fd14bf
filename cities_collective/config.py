from pathlib import Path

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables and .env file.

    Cache sizing, TTLs and the sweep/report intervals are all tunable via
    ``CACHE_*`` variables; the defaults match production.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Query cache
    cache_max_size: int = Field(default=1000, gt=0)
    cache_default_ttl_ms: int = Field(default=5 * 60 * 1000, gt=0)
    cache_sweep_interval_seconds: float = Field(default=5 * 60, gt=0)
    cache_stats_interval_seconds: float = Field(default=10 * 60, gt=0)
    cache_stats_logging: bool = False
    cache_warm_on_startup: bool = True
    cache_single_flight: bool = False

    # Remote hosting: transport and bind address
    mcp_transport: str = "stdio"
    mcp_host: str = "0.0.0.0"
    mcp_port: int = 8000

    # Defaults to <project_root>/data independent of the
    # process working directory
    data_dir: Path = Path(__file__).resolve().parent.parent / "data"
    log_level: str = "INFO"
    db_debug: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def db_path(self) -> Path:
        return self.data_dir / "cities.db"

    @property
    def verbose_cache_logging(self) -> bool:
        """Return True when cache housekeeping should log at INFO."""
        return self.db_debug or self.cache_stats_logging


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the cached Settings singleton. Created on first call."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached settings. Used in tests."""
    global _settings  # noqa: PLW0603
    _settings = None
