"""Configuration management using Pydantic Settings."""
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DISPOSITIONS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database - PostgreSQL in production, SQLite locally
    database_url: str = "sqlite:///./dispositions.db"

    # Object store for report/attachment blobs
    storage_local_path: str = "./data/attachments"
    storage_public_base_url: str = "/files"
    storage_signing_key: str = "change-me"
    signed_url_ttl_seconds: int = 3600

    # Report uploads
    max_report_size_mb: int = 10

    # Transient store failure retry
    retry_attempts: int = 3
    retry_base_delay_seconds: float = 1.0

    # Notifications
    notification_dedupe_window_hours: int = 24
    deadline_reminder_window_days: int = 1

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "console"

    @property
    def sqlalchemy_url(self) -> str:
        # Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
        if self.database_url.startswith("postgres://"):
            return self.database_url.replace("postgres://", "postgresql://", 1)
        return self.database_url


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None
