"""Application settings for the Friendle bot and storage service."""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a ``.env`` file.

    The bot and the storage service read the same settings object; each side
    only looks at the fields it needs.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = "development"
    verbose_errors_enabled: bool = False

    # Discord
    discord_bot_token: str = ""
    discord_application_id: str = ""

    # Storage service endpoint the bot posts puzzles to
    api_base_url: str = "http://localhost:8000"

    # Shared HMAC secret for signed ingestion
    webhook_secret: str = ""

    # Public front-end, used to build /play links
    frontend_url: str | None = None

    # Generation
    generation_hour_utc: int = 1
    min_quote_length: int = 40
    opt_in_storage_path: str = "bot_storage.json"

    # Storage service
    database_url: str = "sqlite+aiosqlite:///./friendle.db"
    stats_write_key: str = ""
    allowed_origin: str = "*"

    @field_validator("generation_hour_utc")
    @classmethod
    def validate_generation_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError("generation_hour_utc must be between 0 and 23")
        return v

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
