"""Configuration management for Cardpipe."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CARDPIPE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_path: Path = Field(
        default=Path("data/cardpipe.db"),
        description="Path to SQLite database file",
    )

    # Scraper
    scraper_endpoint: str = Field(
        default="http://localhost:8787/scrape",
        description="URL of the selector scraping service",
    )
    scraper_api_key: str = Field(
        default="",
        description="Bearer token for the scraping service (optional)",
    )
    scraper_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Scraper request timeout in seconds",
    )

    # Administration
    missing_cards_sample_limit: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum cards listed as missing AI metadata in the overview",
    )
    overview_scan_limit: int = Field(
        default=10_000,
        ge=1,
        description="Maximum cards scanned when building the overview",
    )
    backfill_limit: int = Field(
        default=200,
        ge=1,
        description="Maximum cards reset by a single AI backfill sweep",
    )

    # Pipeline
    stage_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per downstream stage before it is marked failed",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Root log level",
    )

    @property
    def database_url(self) -> str:
        """SQLAlchemy database URL."""
        return f"sqlite:///{self.database_path}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
