"""Application settings loaded from environment variables."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_API_BASE_URL = "http://localhost/wp-json/zc-dmt/v1"


class Settings(BaseSettings):
    """Runtime configuration for the data API and chart defaults.

    Every field can be provided through an environment variable prefixed with
    ``ZC_CHARTS_`` (``ZC_CHARTS_API_KEY``, ``ZC_CHARTS_ENABLE_FALLBACK`` ...) or
    through a ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="ZC_CHARTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key: Optional[str] = Field(default=None)
    api_base_url: str = Field(default=DEFAULT_API_BASE_URL)
    default_library: str = Field(default="chartjs")
    enable_fallback: bool = Field(default=True)
    cache_duration: int = Field(default=3600, ge=0)
    request_timeout: float = Field(default=15.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    backoff_base: float = Field(default=1.0, ge=0)
    debug: bool = Field(default=False)

    @field_validator("api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("default_library")
    @classmethod
    def _normalize_library(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"chartjs", "highcharts"}:
            raise ValueError(f"Unsupported chart library: {value}")
        return normalized


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()
