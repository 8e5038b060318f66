"""
Configuration management for the FSDC fixtures pipeline.

Uses Pydantic settings for type-safe configuration with environment variable support.
All settings can be overridden via environment variables (or a local .env file).
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Pipeline settings with environment variable support.

    Only DATABASE_URL is required at run time; everything else has a
    default matching the Saudi Pro League feed on 365scores.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # Application Metadata
    # ==========================================================================
    app_name: str = "FSDC Fixtures Pipeline"
    app_version: str = "1.0.0"
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR")

    # ==========================================================================
    # Database Configuration
    # ==========================================================================
    database_url: Optional[str] = Field(
        default=None,
        description="PostgreSQL connection string",
    )
    database_pool_size: int = Field(default=5, ge=1, le=50)

    # ==========================================================================
    # Provider Configuration (365scores web API)
    # ==========================================================================
    provider_base_url: str = "https://webws.365scores.com"
    provider_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
    )
    provider_timeout: float = Field(default=30.0, gt=0)
    provider_requests_per_minute: int = Field(default=120, ge=1)
    provider_max_retries: int = Field(
        default=1,
        ge=1,
        description="Attempts per request; 1 disables in-run retries",
    )
    provider_max_pages: int = Field(default=200, ge=1)

    competition_id: int = Field(default=649, description="Saudi Pro League")
    season_num: int = Field(default=53, description="Provider season number")

    # ==========================================================================
    # Batch Processing
    # ==========================================================================
    batch_max_matches: Optional[int] = Field(
        default=50,
        ge=1,
        description="Maximum matches drained per run (None = unbounded)",
    )
    batch_max_seconds: Optional[float] = Field(
        default=600.0,
        gt=0,
        description="Wall-clock budget for one batch run (None = unbounded)",
    )
    stale_processing_minutes: int = Field(
        default=30,
        ge=1,
        description="Age after which a 'processing' status is treated as a crashed run",
    )

    @computed_field
    @property
    def provider_headers(self) -> dict[str, str]:
        """Default headers sent with every provider request."""
        return {
            "User-Agent": self.provider_user_agent,
            "Accept": "application/json",
        }

    def setup_logging(self) -> None:
        """Configure root logging based on settings."""
        logging.basicConfig(
            level=getattr(logging, self.log_level.upper(), logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
