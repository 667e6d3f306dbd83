"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="BPM_",
    )

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = True
    log_level: Literal["debug", "info", "warning", "error"] = "info"

    # Application settings
    app_name: str = "BPM Engine"
    app_version: str = "0.1.0"
    debug: bool = False

    # CORS settings
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    # Persistence
    store_backend: Literal["memory", "sql"] = "sql"
    database_url: str | None = None

    # Execution settings
    event_buffer_size: int = 100
    http_timeout: float = 30.0
    script_timeout: float = 5.0
    recover_timers_on_startup: bool = True

    # Static group membership for the default assignee resolver
    assignee_groups: dict[str, list[str]] = {}

    # Notification delivery (email/sms nodes)
    email_api_url: str | None = None
    sms_api_url: str | None = None
    notifier_api_key: str | None = None
    email_from: str | None = None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
