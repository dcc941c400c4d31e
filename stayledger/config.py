"""Application configuration via pydantic-settings."""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Literal, Optional

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
    app_name: str = "Stayledger"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production", "test"] = "development"
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
    postgres_user: str = "stayledger"
    postgres_password: str = Field(default="stayledger_secret")
    postgres_db: str = "stayledger"
    db_pool_size: int = 20
    db_max_overflow: int = 10
    # Full URL override (e.g. sqlite+aiosqlite:///... in tests)
    database_url_override: Optional[str] = None

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

    # Redis (Celery broker and result backend)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    @computed_field
    @property
    def redis_url(self) -> str:
        """Redis connection URL."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # Payment gateway
    payment_gateway: Literal["paystack", "manual"] = "manual"
    paystack_secret_key: Optional[str] = None
    paystack_base_url: str = "https://api.paystack.co"
    paystack_callback_url: Optional[str] = None
    gateway_timeout_seconds: float = 30.0
    # An initialization claim older than this is presumed abandoned
    payment_init_claim_seconds: int = 120

    # Pricing defaults (percentages). Properties may override the service fee
    # percent and the platform share; a divergence forces a re-quote.
    default_currency: str = "NGN"
    service_fee_percent: Decimal = Decimal("10.00")
    platform_fee_share_percent: Decimal = Decimal("40.00")
    platform_commission_percent: Decimal = Decimal("10.00")
    default_tax_rate_percent: Decimal = Decimal("0.00")

    # Booking lifecycle
    payment_window_minutes: int = 30
    dispute_window_hours: int = 24

    # Payment re-verification (Celery retry backoff)
    verify_retry_max: int = 5
    verify_retry_initial_delay_seconds: int = 30
    verify_retry_max_delay_seconds: int = 900

    # Notifications (delivery is an external service)
    notification_webhook_url: Optional[str] = None
    notification_timeout_seconds: float = 10.0

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
