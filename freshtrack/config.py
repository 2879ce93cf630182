"""
Application configuration using Pydantic settings.
"""
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Remote backend (query / mutate / count)
    backend_base_url: str = Field(
        default="http://localhost:54321",
        description="Base URL of the PostgREST-style inventory backend"
    )
    backend_api_key: str = Field(
        default="",
        description="API key sent as both apikey and bearer token"
    )
    backend_timeout: float = Field(
        default=30.0,
        description="HTTP timeout in seconds for backend calls"
    )

    # Retry Configuration
    max_retry_attempts: int = Field(
        default=3,
        description="Maximum number of attempts for a backend call"
    )
    retry_backoff_multiplier: int = Field(
        default=1,
        description="Multiplier for exponential backoff"
    )
    retry_min_wait: int = Field(
        default=1,
        description="Minimum wait time in seconds between retries"
    )
    retry_max_wait: int = Field(
        default=10,
        description="Maximum wait time in seconds between retries"
    )

    # Risk model inputs
    optimal_temperature_c: float = Field(
        default=10.0,
        description="Storage temperature used as the zero-deviation point"
    )
    optimal_humidity_pct: float = Field(
        default=65.0,
        description="Relative humidity used as the zero-deviation point"
    )

    # Live inventory / alerts
    default_warehouse_id: Optional[str] = Field(
        default=None,
        description="Warehouse scope the inventory view starts with (unset = all)"
    )
    alert_poll_interval_seconds: float = Field(
        default=30.0,
        description="Interval between alert count refreshes"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    # CORS Configuration
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins (use specific origins in production)"
    )

    # Rate Limiting
    rate_limit_requests: int = Field(
        default=100,
        description="Maximum requests per minute per client"
    )

    # Application Settings
    app_name: str = Field(
        default="FreshTrack Inventory Core",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
