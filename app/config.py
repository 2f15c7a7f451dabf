"""Application configuration via pydantic-settings."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Eden Parfum API"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"
    api_prefix: str = "/api"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # CORS
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:8080"]

    # Catalog database (optional, only probed by the health monitor)
    postgres_host: Optional[str] = None
    postgres_port: int = 5432
    postgres_user: str = "eden"
    postgres_password: str = Field(default="eden_secret")
    postgres_db: str = "eden_parfum"

    @computed_field
    @property
    def database_url(self) -> Optional[str]:
        """Async PostgreSQL connection URL, None when no database is configured."""
        if not self.postgres_host:
            return None
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Email notifications (SMTP)
    enable_error_email: bool = False
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    error_notification_email: Optional[str] = None
    email_from_address: Optional[str] = None

    @property
    def email_sender(self) -> str:
        """Sender address for error emails."""
        return self.email_from_address or self.smtp_user or "noreply@edenparfum.com"

    # Webhook notifications
    enable_error_webhooks: bool = False
    slack_webhook_url: Optional[str] = None
    discord_webhook_url: Optional[str] = None
    error_webhook_url: Optional[str] = None
    webhook_timeout: float = 10.0  # seconds

    # Notification rate limiting
    max_notifications_per_hour: int = 10
    notification_cooldown: int = 300000  # ms

    # Error thresholds
    critical_error_threshold: int = 5
    error_rate_threshold: float = 0.1  # errors per minute
    response_time_threshold: int = 5000  # ms

    # Error analysis timers
    error_pattern_interval: int = 60000  # ms
    error_cleanup_interval: int = 3600000  # ms

    # Health monitoring
    health_check_interval: int = 60000  # ms
    enable_detailed_health_check: bool = False
    memory_usage_alert_threshold: int = 80  # percent
    slow_request_threshold: int = 2000  # ms
    health_check_urls: List[str] = []


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
