"""
Runtime configuration read from the environment (and an optional .env file).
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings. Field defaults are the production defaults.

    Each field is read from the upper-cased environment variable of the
    same name (``DATABASE_URL``, ``DEDUP_TITLE_PREFIX``, ...); empty values
    fall back to the default.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    database_url: str = Field(default="monitor.db")
    jobs_config: str = Field(default="jobs.yml")

    # Scheduler
    scheduler_timezone: str = Field(default="Asia/Bangkok")
    scheduler_mode: str = Field(default="enabled")  # "disabled": wait for an explicit initialize
    api_base_url: str = Field(default="http://localhost:8000")
    job_timeout: float = Field(default=300.0)

    # Outbound HTTP
    http_timeout: float = Field(default=30.0)
    http_max_retries: int = Field(default=3, ge=1)
    social_api_key: Optional[str] = Field(default=None)
    social_api_host: str = Field(default="facebook-scraper3.p.rapidapi.com")

    # Duplicate collapse
    dedup_title_prefix: int = Field(default=60, gt=0)
    dedup_max_gap_minutes: int = Field(default=120, gt=0)
    dedup_window_days: int = Field(default=7, gt=0)

    # HTTP server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    log_level: str = Field(default="INFO")

    @property
    def scheduler_enabled(self) -> bool:
        return self.scheduler_mode.lower() != "disabled"


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings, read once."""
    return Settings()
