"""Application configuration management."""

from dataclasses import dataclass
from datetime import time
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.constants import (
    DEFAULT_DISCOUNT_PERCENT,
    DEFAULT_PRODUCT_IMAGE,
    DEFAULT_VIEW_THRESHOLD,
)


def parse_time_of_day(value: str) -> time:
    """Parse an ``HH:MM`` wall-clock string."""
    try:
        hour_str, minute_str = value.strip().split(":")
        return time(hour=int(hour_str), minute=int(minute_str))
    except ValueError as e:
        raise ValueError(f"Invalid time of day {value!r}, expected HH:MM") from e


@dataclass(frozen=True)
class CampaignConfig:
    """Immutable campaign configuration handed to the scheduler at startup."""

    abandoned_cart_time: time
    frequent_viewer_time: time
    purchase_confirm_time: time
    view_threshold: int = DEFAULT_VIEW_THRESHOLD
    default_product_image: str = DEFAULT_PRODUCT_IMAGE
    from_email: str = "noreply@example-store.com"
    from_name: str = "ECOMMERCE"
    store_url: str = "https://your-store.com"
    discount_percent: int = DEFAULT_DISCOUNT_PERCENT
    send_timeout_seconds: float = 10.0
    run_deadline_seconds: float = 900.0
    max_concurrent_sends: int = 1
    renotify_cooldown_hours: int = 24
    abandoned_cart_delay_hours: int = 0


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_name: str = "engagement-automation"
    app_env: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # API Settings
    # -------------------------------------------------------------------------
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 4
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    # -------------------------------------------------------------------------
    # PostgreSQL Database
    # -------------------------------------------------------------------------
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "store"
    postgres_password: str = ""
    postgres_db: str = "store"
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_recycle: int = 1800

    @property
    def database_url(self) -> str:
        """Construct PostgreSQL connection URL."""
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def database_url_sync(self) -> str:
        """Construct synchronous PostgreSQL connection URL (for Alembic)."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # -------------------------------------------------------------------------
    # Redis
    # -------------------------------------------------------------------------
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0

    @property
    def redis_url(self) -> str:
        """Construct Redis connection URL."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # -------------------------------------------------------------------------
    # Celery
    # -------------------------------------------------------------------------
    celery_broker_url: str = ""
    celery_result_backend: str = ""
    celery_timezone: str = "UTC"

    @property
    def celery_broker(self) -> str:
        """Get Celery broker URL, defaulting to Redis URL."""
        return self.celery_broker_url or self.redis_url

    @property
    def celery_backend(self) -> str:
        """Get Celery result backend URL, defaulting to Redis URL."""
        return self.celery_result_backend or self.redis_url

    # -------------------------------------------------------------------------
    # Email Service
    # -------------------------------------------------------------------------
    email_service: Literal["mock", "sendgrid"] = "mock"
    email_from_address: str = "noreply@example-store.com"
    email_from_name: str = "ECOMMERCE"
    sendgrid_api_key: str = ""
    sendgrid_base_url: str = "https://api.sendgrid.com"
    mock_email_storage_path: str = "/tmp/engagement_mock_emails"
    store_url: str = "https://your-store.com"

    # -------------------------------------------------------------------------
    # Email Campaign Settings
    # -------------------------------------------------------------------------
    abandoned_cart_time: str = "09:53"
    frequent_viewer_time: str = "09:00"
    purchase_confirm_time: str = "10:00"
    view_threshold: int = Field(default=DEFAULT_VIEW_THRESHOLD, ge=0)
    default_product_image: str = DEFAULT_PRODUCT_IMAGE
    discount_percent: int = Field(default=DEFAULT_DISCOUNT_PERCENT, ge=0, le=100)
    campaign_send_timeout_seconds: float = Field(default=10.0, gt=0)
    campaign_run_deadline_seconds: float = Field(default=900.0, gt=0)
    campaign_max_concurrent_sends: int = Field(default=1, ge=1)
    campaign_renotify_cooldown_hours: int = Field(default=24, ge=0)
    abandoned_cart_delay_hours: int = Field(default=0, ge=0)

    @field_validator("abandoned_cart_time", "frequent_viewer_time", "purchase_confirm_time")
    @classmethod
    def validate_time_of_day(cls, v: str) -> str:
        parse_time_of_day(v)
        return v

    def campaign_config(self) -> CampaignConfig:
        """Build the immutable campaign configuration."""
        return CampaignConfig(
            abandoned_cart_time=parse_time_of_day(self.abandoned_cart_time),
            frequent_viewer_time=parse_time_of_day(self.frequent_viewer_time),
            purchase_confirm_time=parse_time_of_day(self.purchase_confirm_time),
            view_threshold=self.view_threshold,
            default_product_image=self.default_product_image,
            from_email=self.email_from_address,
            from_name=self.email_from_name,
            store_url=self.store_url,
            discount_percent=self.discount_percent,
            send_timeout_seconds=self.campaign_send_timeout_seconds,
            run_deadline_seconds=self.campaign_run_deadline_seconds,
            max_concurrent_sends=self.campaign_max_concurrent_sends,
            renotify_cooldown_hours=self.campaign_renotify_cooldown_hours,
            abandoned_cart_delay_hours=self.abandoned_cart_delay_hours,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
