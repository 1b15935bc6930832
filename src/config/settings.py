"""Runtime settings for the archiver, loaded from the environment.

Values come from ``ARCHIVER_*`` environment variables, falling back to a
``.env`` file in the working directory and then to the defaults below.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    """Raised when required configuration is missing or unusable."""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ARCHIVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Storage ===
    # A filesystem path (SQLite) or a full SQLAlchemy URL.
    database_url: str = "data/anond_archive.db"

    # === Deployment ===
    # "development" enables the manual/batch scraping endpoints.
    environment: str = "production"
    site: str = "anond"
    extractor: str = "tree"
    light_extractor: str = "pattern"

    # === Crawl budgets ===
    crawl_timeout_seconds: float = 300.0
    page_delay_seconds: float = 0.5
    batch_delay_seconds: float = 0.5
    default_max_days: int = 31
    stop_on_known: bool = False

    # === Periodic trigger ===
    schedule_interval_seconds: int = 60
    progress_pages_per_tick: int = 1

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev")

    def require_database_url(self) -> str:
        url = self.database_url.strip()
        if not url:
            raise ConfigurationError(
                "ARCHIVER_DATABASE_URL is not set; cannot connect to the archive store."
            )
        return url


@lru_cache
def get_settings() -> Settings:
    return Settings()
