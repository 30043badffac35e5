"""
Application configuration using Pydantic Settings.

Loads configuration from environment variables with validation,
type coercion, and sensible defaults.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PathsConfig(BaseSettings):
    """Filesystem locations used by the cache, snapshots and library."""

    model_config = SettingsConfigDict(env_prefix="TROVE_")

    home: Path = Field(
        default_factory=lambda: Path.home() / ".trove",
        description="Base directory for all trove-keeper state",
    )
    cache_dir: Path | None = Field(
        default=None,
        description="Content cache directory (defaults to <home>/cache)",
    )
    state_dir: Path | None = Field(
        default=None,
        description="Directory for catalog snapshots and library.json (defaults to <home>)",
    )
    library_root: Path | None = Field(
        default=None,
        description="Directory where downloaded installers are stored",
    )
    downloads_dir: Path | None = Field(
        default=None,
        description="Scratch directory the browser downloads into",
    )

    @property
    def resolved_cache_dir(self) -> Path:
        """Cache directory with the default applied."""
        return self.cache_dir or self.home / "cache"

    @property
    def resolved_state_dir(self) -> Path:
        """State directory with the default applied."""
        return self.state_dir or self.home


class FeedConfig(BaseSettings):
    """Remote catalog configuration."""

    model_config = SettingsConfigDict(env_prefix="FEED_")

    root_url: str = Field(
        default="https://www.humblebundle.com/subscription/trove",
        description="Root document embedding the catalog payload",
    )
    chunk_url_template: str = Field(
        default=(
            "https://www.humblebundle.com/api/v1/trove/chunk"
            "?property=start&direction=desc&index={index}"
        ),
        description="Chunk URL template, formatted with the chunk index",
    )
    payload_element_id: str = Field(
        default="webpack-monthly-trove-data",
        description="HTML element id holding the embedded JSON payload",
    )
    max_refresh_attempts: int = Field(
        default=1,
        ge=0,
        le=5,
        description="Invalidate-and-retry cycles allowed when the catalog is expired",
    )
    diff_identity: Literal["human_name", "machine_name"] = Field(
        default="human_name",
        description="Product field used to compare snapshots",
    )

    @field_validator("chunk_url_template")
    @classmethod
    def validate_template(cls, v: str) -> str:
        """Chunk URLs must vary by index."""
        if "{index}" not in v:
            raise ValueError(f"Chunk URL template must contain '{{index}}': {v}")
        return v


class LibraryConfig(BaseSettings):
    """Game library configuration."""

    model_config = SettingsConfigDict(env_prefix="LIBRARY_")

    platform_priority: list[str] = Field(
        default_factory=lambda: ["windows"],
        min_length=1,
        description="Download platforms in order of preference",
    )


class HTTPConfig(BaseSettings):
    """HTTP transport configuration."""

    model_config = SettingsConfigDict(env_prefix="HTTP_")

    timeout_seconds: int = Field(
        default=30,
        ge=5,
        le=300,
        description="HTTP request timeout in seconds",
    )
    user_agent: str = Field(
        default="TroveKeeper/1.0",
        description="User-Agent header sent with every request",
    )


class RetryConfig(BaseSettings):
    """Retry behavior configuration."""

    model_config = SettingsConfigDict(env_prefix="RETRY_")

    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum number of retry attempts",
    )
    base_delay_seconds: float = Field(
        default=1.0,
        ge=0.1,
        le=30.0,
        description="Base delay between retries (exponential backoff)",
    )
    max_delay_seconds: float = Field(
        default=60.0,
        ge=1.0,
        le=300.0,
        description="Maximum delay between retries",
    )
    exponential_base: float = Field(
        default=2.0,
        ge=1.5,
        le=4.0,
        description="Base for exponential backoff calculation",
    )


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    format: Literal["json", "console"] = Field(
        default="json",
        description="Log output format",
    )


class Settings(BaseSettings):
    """
    Main application settings.

    Aggregates all configuration sections and provides
    a single entry point for configuration access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Sub-configurations
    paths: PathsConfig = Field(default_factory=PathsConfig)
    feed: FeedConfig = Field(default_factory=FeedConfig)
    library: LibraryConfig = Field(default_factory=LibraryConfig)
    http: HTTPConfig = Field(default_factory=HTTPConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once
    and reused across the application.

    Returns:
        Settings: Application configuration instance
    """
    return Settings()
