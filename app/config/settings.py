"""
Application settings and configuration.
All secrets are loaded from environment variables.
"""

from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./messages.db"

    # Outbound WhatsApp API (default credential, used when a tenant has no channel row)
    whatsapp_api_url: str = "https://ws.koonetxa.cloud/api/sendText"
    whatsapp_api_key: str = ""
    whatsapp_default_session: str = "default"
    chat_id_suffix: str = "@c.us"
    http_timeout_seconds: float = 30.0

    # Dispatch policy
    batch_size: int = 50
    retry_limit: int = 3
    retry_delay_minutes: int = 5
    lease_timeout_seconds: int = 300

    # Scheduler
    scheduler_enabled: bool = True
    dispatch_interval_seconds: int = 60

    # Application Settings
    debug: bool = False
    cors_allow_origins: List[str] = ["*"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
