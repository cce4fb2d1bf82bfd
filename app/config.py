"""Application configuration via pydantic-settings."""

from __future__ import annotations

from decimal import Decimal
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
    app_name: str = "Rental Booking Lifecycle"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 4

    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "rentals"
    postgres_password: str = Field(default="rentals_secret")
    postgres_db: str = "rentals"
    db_pool_size: int = 20
    db_max_overflow: int = 10
    database_url_override: Optional[str] = None  # e.g. sqlite+aiosqlite:///./dev.db

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

    @computed_field
    @property
    def sync_database_url(self) -> str:
        """Sync PostgreSQL connection URL for Alembic."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Redis (Celery broker / result backend)
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

    # JWT Authentication
    jwt_secret_key: str = Field(default="your-super-secret-key-change-in-production")
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    jwt_roles_claim: str = "roles"

    # Admin authorization policy
    admin_roles: List[str] = ["admin"]
    admin_user_ids: List[str] = []

    # AWS S3 (booking evidence)
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: str = "us-east-1"
    s3_bucket_name: str = "rental-evidence"
    s3_endpoint_url: Optional[str] = None  # For MinIO in dev
    evidence_url_expiry_seconds: int = 300

    # Notifications
    notification_webhook_url: Optional[str] = None
    notification_timeout_seconds: float = 5.0

    # CORS
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:8080"]

    # Commission (platform share of the gross rental amount)
    platform_commission_rate: Decimal = Decimal("0.10")

    # Confirmation transactions
    transaction_max_attempts: int = 5
    transaction_retry_backoff_seconds: float = 0.05
    transaction_deadline_seconds: float = 10.0

    # Scheduled sweep of stalled ended bookings
    sweep_interval_minutes: int = Field(default=15, gt=0)
    sweep_grace_period_hours: int = 24
    sweep_batch_size: int = 100
    enable_in_process_sweep: bool = False

    # Legacy status migration
    migration_batch_size: int = 500


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
