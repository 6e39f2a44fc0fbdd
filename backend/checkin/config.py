"""
Application configuration using Pydantic Settings.
Loads from environment variables and .env file.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Checkin"
    app_env: str = "development"  # development, staging, production
    debug: bool = False
    log_level: str = "INFO"
    local_timezone: str = "Asia/Bangkok"

    # Database
    database_url: str = "postgresql://localhost:5432/checkin"

    # Admin API
    admin_api_key: Optional[str] = None  # Required in production

    # LINE Messaging API
    line_channel_access_token: Optional[str] = None
    line_api_base_url: str = "https://api.line.me"
    line_request_timeout_seconds: float = 5.0
    liff_id: Optional[str] = None

    # Notification toggles
    notify_on_check_in: bool = True
    notify_on_check_out: bool = True
    notify_on_queue_call: bool = True

    # Transaction retry budget for counter / channel writes
    transaction_max_attempts: int = 5
    transaction_backoff_initial_seconds: float = 0.05
    transaction_backoff_max_seconds: float = 1.0

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def liff_url(self) -> Optional[str]:
        """Base URL of the student-facing LIFF app, if configured."""
        if self.liff_id:
            return f"https://liff.line.me/{self.liff_id}"
        return None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
