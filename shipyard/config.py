"""Configuration management for Shipyard."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5040)
    log_level: str = Field(default="INFO")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017")
    mongodb_database: str = Field(default="shipyard")

    # Authenticated principal, injected by the gateway in front of the API
    principal_header: str = Field(default="X-Principal-Id")

    # Vercel deployment provider
    vercel_token: str = Field(default="")
    vercel_team_id: str = Field(default="")
    vercel_api_url: str = Field(default="https://api.vercel.com")
    provider_timeout: float = Field(default=60.0)  # seconds

    # Telegram notification channel
    telegram_bot_token: str = Field(default="")
    telegram_chat_id: str = Field(default="")
    telegram_api_url: str = Field(default="https://api.telegram.org")

    # Slack notification channel
    slack_webhook_url: str = Field(default="")

    # Stale attempt reaper
    stale_attempt_minutes: int = Field(default=30)
    reaper_check_interval: int = Field(default=60)  # seconds


@lru_cache
def get_settings() -> Settings:
    return Settings()
