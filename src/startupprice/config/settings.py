"""Application configuration schema and validation."""

from typing import Optional

from pydantic import Field, PostgresDsn, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """Application configuration loaded from environment variables.

    The three Stripe values are required; construction fails with a
    ValidationError when any of them is missing or blank, which keeps the
    server from starting half-configured.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    stripe_secret_key: SecretStr = Field(
        ...,
        description="Stripe secret API key",
    )
    stripe_webhook_secret: SecretStr = Field(
        ...,
        description="Stripe webhook signing secret (whsec_...)",
    )
    stripe_price_id: str = Field(
        ...,
        description="Stripe price ID of the monthly Pro plan",
    )
    frontend_url: str = Field(
        default="https://start-up-price-ai.vercel.app",
        description="Front-end base URL for post-checkout redirects",
    )
    port: int = Field(
        default=3001,
        ge=1,
        le=65535,
        description="HTTP listen port",
    )
    webhook_tolerance_seconds: int = Field(
        default=300,
        ge=1,
        description="Maximum age of a webhook signature timestamp",
    )
    provider_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for outbound Stripe API calls",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    db_dsn: Optional[PostgresDsn] = Field(
        default=None,
        description="PostgreSQL DSN; in-memory entitlement store when unset",
    )
    db_pool_min: int = Field(
        default=1,
        ge=1,
        description="Minimum database connection pool size",
    )
    db_pool_max: int = Field(
        default=5,
        ge=1,
        description="Maximum database connection pool size",
    )
    exchange_rate_url: str = Field(
        default="https://api.exchangerate-api.com/v4/latest/USD",
        description="Public USD exchange-rate endpoint",
    )
    plan_price_usd: float = Field(
        default=5.0,
        gt=0,
        description="Monthly Pro plan price in USD, shown converted to BRL",
    )
    fallback_usd_brl_rate: float = Field(
        default=5.0,
        gt=0,
        description="USD->BRL rate used when the exchange-rate fetch fails",
    )

    @field_validator("stripe_secret_key", "stripe_webhook_secret")
    @classmethod
    def validate_secret_present(cls, v: SecretStr, info) -> SecretStr:
        """Reject blank secrets."""
        if not v.get_secret_value().strip():
            raise ValueError(f"{info.field_name} must not be empty")
        return v

    @field_validator("stripe_price_id")
    @classmethod
    def validate_price_id(cls, v: str) -> str:
        """Reject a blank price ID."""
        if not v.strip():
            raise ValueError("stripe_price_id must not be empty")
        return v.strip()

    @field_validator("frontend_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("db_pool_max")
    @classmethod
    def validate_pool_max(cls, v: int, info) -> int:
        """Ensure pool_max >= pool_min."""
        if "db_pool_min" in info.data and v < info.data["db_pool_min"]:
            raise ValueError("db_pool_max must be >= db_pool_min")
        return v


_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Get or create the singleton AppConfig instance."""
    global _config
    if _config is None:
        _config = AppConfig()
    return _config


def reset_config() -> None:
    """Drop the cached AppConfig so the next get_config() re-reads the environment."""
    global _config
    _config = None
