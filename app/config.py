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
    app_name: str = "Activity Booking API"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "booking"
    postgres_password: str = Field(default="booking_secret")
    postgres_db: str = "activity_booking"
    database_url_override: Optional[str] = Field(default=None, alias="DATABASE_URL")
    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_echo: bool = False

    @computed_field
    @property
    def database_url(self) -> str:
        """Async database connection URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # JWT Authentication
    jwt_secret_key: str = Field(default="your-super-secret-key-change-in-production")
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Payment Gateways
    payment_gateway: Literal["stripe", "manual"] = "manual"
    payment_currency: str = "usd"
    payment_gateway_timeout_seconds: float = 10.0
    allow_live_gateway_outside_production: bool = False
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    payment_webhook_secret: str = Field(default="manual-webhook-secret-change-me")

    # Frontend redirects for hosted checkout
    frontend_url: str = "http://localhost:3000"

    # Email (SendGrid)
    sendgrid_api_key: Optional[str] = None
    email_from_address: str = "noreply@activities.example.com"
    email_from_name: str = "Activity Bookings"

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    # Booking rules
    cancellation_window_hours: int = 24

    # Pagination
    default_page_size: int = 20
    max_page_size: int = 100


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
