"""Runtime settings loaded from environment variables."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process-level settings for the extractor CLI."""

    model_config = SettingsConfigDict(
        env_prefix="OPENAPI_EXTRACTOR_",
        extra="ignore",
    )

    root: str | None = Field(default=None)
    log_level: str = Field(default="WARNING")


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the runtime settings."""

    return Settings()
