"""API configuration using Pydantic Settings."""

from enum import Enum
from functools import lru_cache

from pydantic import Field, RedisDsn, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class Settings(BaseSettings):
    """API configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ============ Environment ============
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    log_level: LogLevel = LogLevel.INFO
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    app_url: str = Field(
        default="http://localhost:3000",
        description="Public URL of the web front end (Stripe redirects)",
    )

    # ============ Security ============
    secret_key: SecretStr = Field(
        default="CHANGE_ME_IN_PRODUCTION_32_CHARS_MIN",
        description="Secret key for JWT signing",
    )
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    # CORS
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"]
    )

    # ============ Database ============
    database_url: str = Field(
        default="sqlite+aiosqlite:///./finwise.db",
        description="SQLAlchemy async connection URL",
    )
    sql_echo: bool = False
    redis_url: RedisDsn = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )

    # ============ Stripe ============
    stripe_secret_key: SecretStr | None = None
    stripe_webhook_secret: SecretStr | None = None
    stripe_pro_price_id: str | None = None
    stripe_webhook_tolerance: int = 300  # seconds

    # ============ Currency ============
    exchange_rate_api_url: str = Field(
        default="https://open.er-api.com/v6/latest/USD",
        description="Rate source returning {'rates': {...}} relative to USD; empty for static rates",
    )
    exchange_rate_ttl_seconds: int = 60 * 60
    exchange_rate_timeout: float = 5.0
    exchange_rate_retry_seconds: int = 60  # wait after a failed refresh

    # ============ Plans ============
    free_plan_expense_limit: int = 50

    # ============ Rate Limiting ============
    user_requests_per_minute: int = 60
    admin_requests_per_minute: int = 300
    anonymous_requests_per_minute: int = 20

    # ============ Monitoring ============
    sentry_dsn: str | None = None
    prometheus_enabled: bool = True

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == Environment.PRODUCTION

    @property
    def stripe_enabled(self) -> bool:
        """Check if Stripe API calls can be made."""
        return self.stripe_secret_key is not None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
