"""Settings models for Gallerybox."""

import os
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


ONE_GIB = 1024 * 1024 * 1024


def default_cache_path() -> Path:
    if "XDG_CACHE_HOME" in os.environ:
        return Path(os.environ["XDG_CACHE_HOME"]) / "gallerybox" / "image_cache"
    return Path.home() / ".cache" / "gallerybox" / "image_cache"


class GallerySettings(BaseSettings):
    """Gallery configuration with automatic environment variable support.

    Precedence order (highest to lowest):
    1. Environment variables (``GALLERYBOX_*``)
    2. Constructor arguments (file data)
    3. .env file
    4. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="GALLERYBOX_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: Any,
        env_settings: Any,
        dotenv_settings: Any,
        file_secret_settings: Any,
    ) -> tuple[Any, ...]:
        """Environment variables override file configuration."""
        return (
            env_settings,
            init_settings,
            dotenv_settings,
            file_secret_settings,
        )

    # Cache
    max_cache_bytes: int = Field(
        default=ONE_GIB,
        ge=0,
        description="Eviction budget for the on-disk image cache",
    )
    cache_path: Path = Field(
        default_factory=default_cache_path,
        description="Root directory of the image cache",
    )

    # Pagination
    page_size: int = Field(
        default=30,
        ge=1,
        description="Page length of the bulk (infinite scroll) mode",
    )

    # Size monitoring
    debounce_interval_ms: int = Field(
        default=100,
        ge=0,
        description="Coalescing window for cache size recomputes",
    )
    history_capacity: int = Field(
        default=50,
        ge=1,
        description="Number of cache size samples kept",
    )
    staleness_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Republish an unchanged cache size after this many seconds",
    )

    # Remote source
    api_base_url: str = Field(
        default="https://picsum.photos",
        description="Base URL of the paged image listing API",
    )
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    background_workers: int = Field(
        default=4,
        ge=1,
        description="Threads used for background caching",
    )

    # Logging
    log_level: str = "WARNING"

    @field_validator("cache_path", mode="before")
    @classmethod
    def expand_cache_path(cls, v: Any) -> Any:
        if isinstance(v, str | Path):
            return Path(v).expanduser()
        return v

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level
