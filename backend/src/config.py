"""Application configuration via environment variables.

Provides type-safe settings loading using pydantic-settings.
Environment variables can be loaded from a .env file.
"""

from typing import Optional
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings have sensible defaults for development.
    Production deployments MUST set the ERP endpoints, the system
    credentials and JWT_SECRET.

    Environment Variables:
        SANKHYA_API_URL: Base URL of the ERP gateway (system-attributed calls)
        SANKHYA_TRANSACTION_URL: Base URL for calls made with an operator's JSESSIONID
        SANKHYA_RENEW_URL: Keep-alive endpoint for operator sessions
        SANKHYA_APPKEY / SANKHYA_TOKEN / SANKHYA_USERNAME / SANKHYA_PASSWORD:
            Static system identity exchanged for a bearer token
        REDIS_URL: Redis connection string (session registry)
        JWT_SECRET: Operator token signing key (MUST be set in production)
        LOG_LEVEL: Logging level (default INFO)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # External ERP endpoints
    SANKHYA_API_URL: str = "http://localhost:8180"
    SANKHYA_TRANSACTION_URL: str = "http://localhost:8180/mge"
    SANKHYA_RENEW_URL: str = "http://localhost:8180/mge/keepalive"

    # System identity
    SANKHYA_APPKEY: str = ""
    SANKHYA_TOKEN: str = ""
    SANKHYA_USERNAME: str = ""
    SANKHYA_PASSWORD: str = ""

    # System credential lifetime (the ERP does not report it reliably)
    SANKHYA_TOKEN_EXPIRY_SECONDS: int = 290
    CREDENTIAL_SAFETY_MARGIN_SECONDS: int = 10

    # ERP call policy
    ERP_HTTP_TIMEOUT_SECONDS: float = 10.0
    ERP_MAX_ATTEMPTS: int = 2
    ERP_RETRY_BACKOFF_SECONDS: float = 0.3

    # Batch visibility polling
    VISIBILITY_MAX_ATTEMPTS: int = 10
    VISIBILITY_INTERVAL_SECONDS: float = 0.5

    # Overall deadline for one execute-transaction request
    TRANSACTION_TIMEOUT_SECONDS: float = 60.0

    # Redis / sessions
    REDIS_URL: str = "redis://localhost:6379/0"
    SESSION_TTL_MINUTES: int = 50

    # Keep-alive (interval must stay below the ERP idle-kill window)
    KEEPALIVE_INTERVAL_SECONDS: int = 15
    KEEPALIVE_TICK_SECONDS: int = 5
    KEEPALIVE_PING_TIMEOUT_SECONDS: float = 5.0
    KEEPALIVE_MAX_WORKERS: int = 8
    KEEPALIVE_MODE: str = "thread"  # thread | celery | off

    # Celery (keep-alive beat in celery mode)
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: Optional[str] = None

    # Operator tokens
    JWT_SECRET: str = "dev-secret-key-CHANGE-IN-PRODUCTION"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_MINUTES: int = 50

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    ENVIRONMENT: str = "development"
    CORS_ORIGINS: str = "*"

    @property
    def session_ttl_seconds(self) -> int:
        return self.SESSION_TTL_MINUTES * 60

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache for singleton behavior.
    Call get_settings.cache_clear() to reload settings.
    """
    return Settings()


# Module-level settings instance
settings = get_settings()
