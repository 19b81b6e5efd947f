from typing import List, Union
from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    # Application
    APP_NAME: str = "SmartPOS Platform"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "production"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./smartpos.db"

    # Security
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 12
    IMPERSONATION_TOKEN_EXPIRE_MINUTES: int = 120

    # CORS
    BACKEND_CORS_ORIGINS: List[Union[str, AnyHttpUrl]] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Slugs
    SLUG_MIN_LENGTH: int = 3
    SLUG_MAX_LENGTH: int = 30
    RESERVED_SLUGS: List[str] = [
        "admin", "api", "www", "app", "dashboard", "login", "signup", "super-admin"
    ]

    # Platform governance surface (super admin logs in under this slug)
    SUPER_ADMIN_SLUG: str = "admin"

    # Subscription health thresholds (days remaining)
    SUBSCRIPTION_WARNING_DAYS: int = 30
    SUBSCRIPTION_CRITICAL_DAYS: int = 7
    MAX_SUBSCRIPTION_MONTHS: int = 60
    MAX_EXTENSION_DAYS: int = 365
    DEFAULT_GRACE_PERIOD_DAYS: int = 7

    # Tenant defaults applied on approval
    DEFAULT_CURRENCY_CODE: str = "NGN"
    DEFAULT_CURRENCY_SYMBOL: str = "₦"
    DEFAULT_TAX_RATE: float = 0.0

    # Monitoring & Performance Settings
    SLOW_QUERY_THRESHOLD_MS: float = 100.0  # Log queries slower than this (milliseconds)
    SLOW_REQUEST_THRESHOLD_MS: float = 1000.0  # Log requests slower than this (milliseconds)
    ENABLE_STRUCTURED_LOGGING: bool = True  # Use JSON structured logging
    ENABLE_PROMETHEUS_METRICS: bool = True  # Enable Prometheus metrics collection

    @property
    def reserved_slugs(self) -> frozenset:
        return frozenset(slug.lower() for slug in self.RESERVED_SLUGS)


settings = Settings()
