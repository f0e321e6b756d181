"""Application configuration."""
from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_debug: bool = True
    log_level: str = "DEBUG"

    # Database - 필수 필드
    database_url: str = Field(
        ...,
        description="Database connection URL (required)",
    )
    db_pool_size: int = Field(
        default=20,
        description="DB connection pool size",
    )
    db_max_overflow: int = Field(
        default=10,
        description="Max overflow connections",
    )
    db_pool_timeout: int = Field(
        default=30,
        description="Pool connection timeout in seconds",
    )
    db_pool_recycle: int = Field(
        default=1800,
        description="Connection recycle time in seconds",
    )

    # Redis (optional: event stream + Celery broker)
    redis_url: str | None = Field(
        default=None,
        description="Redis connection URL. Without it events stay in-process.",
    )
    redis_max_connections: int = 50
    redis_socket_timeout: float = 5.0
    event_stream_key: str = "prizepool:events"
    event_stream_maxlen: int = 10000

    # Sentry
    sentry_dsn: str | None = Field(
        default=None,
        description="Sentry DSN for error tracking (required in production)",
    )
    sentry_traces_sample_rate: float = 0.05

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Payment gateway (charge intents + webhook)
    gateway_base_url: str = "https://api.mercadopago.com"
    gateway_access_token: str = Field(
        default="",
        description="Gateway API access token",
    )
    gateway_webhook_secret: str | None = Field(
        default=None,
        description="HMAC secret for webhook signatures (required in production)",
    )
    gateway_timeout_seconds: float = Field(
        default=10.0,
        description="Charge intent / lookup timeout",
    )
    gateway_payer_email_domain: str = "prizepool.local"
    currency: str = "BRL"
    currency_minor_units: int = Field(
        default=2,
        description="Decimal places of the settlement currency",
    )

    # Payout rail
    payout_mode: Literal["simulated", "live"] = "simulated"
    payout_base_url: str = "https://api.mercadopago.com"
    payout_timeout_seconds: float = 15.0

    # Notifications
    notification_webhook_url: str | None = None
    notification_timeout_seconds: float = 5.0

    # Reconciliation
    reconciliation_lookback_hours: int = 48
    reconciliation_grace_minutes: int = 5
    distribution_stale_minutes: int = 10

    @property
    def minor_unit(self) -> Decimal:
        """Smallest currency step, e.g. Decimal('0.01')."""
        return Decimal(1).scaleb(-self.currency_minor_units)

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate settings for production environment."""
        if self.app_env == "production":
            if self.app_debug:
                raise ValueError(
                    "app_debug must be False in production environment"
                )

            origins = [o.strip() for o in self.cors_origins.split(",")]
            if "*" in origins:
                raise ValueError(
                    "CORS wildcard '*' is not allowed in production environment. "
                    "Specify explicit allowed origins."
                )

            if not self.gateway_webhook_secret:
                raise ValueError(
                    "gateway_webhook_secret is required in production environment"
                )

            # 운영 환경에서 모의 송금 금지
            if self.payout_mode != "live":
                raise ValueError(
                    "payout_mode must be 'live' in production environment"
                )

        return self

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
