from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    environment: str = Field(default="development", alias="NODE_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")

    # VIES (authoritative VAT service)
    vies_url: str = Field(
        default="https://ec.europa.eu/taxation_customs/vies/services/checkVatService",
        alias="VIES_URL",
    )
    vies_timeout_ms: int = Field(default=8000, alias="VIES_TIMEOUT_MS")
    vies_max_attempts: int = Field(default=3, alias="VIES_MAX_ATTEMPTS")
    vies_backoff_ms: int = Field(default=300, alias="VIES_BACKOFF_MS")
    user_agent: str = Field(
        default="VATFix-Plus/1.0 (+https://plus.vatfix.eu)",
        alias="USER_AGENT",
    )

    # Cache
    cache_ttl_hours: float = Field(default=12, alias="CACHE_TTL_HOURS")
    cache_namespace: str = Field(
        default="v2",
        alias="CACHE_NS",
        description="Bump to invalidate every cached lookup without deleting keys",
    )

    # Rate limiting
    rate_window_ms: int = Field(default=60000, alias="VATFIX_WINDOW_MS")
    rate_limit: int = Field(default=120, alias="VATFIX_RPS_LIMIT")

    # Key-value store
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    store_prefix: str = Field(default="vatfix", alias="STORE_PREFIX")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        env_ignore_empty=True,  # Treat empty strings as not set
    )

    @field_validator(
        "vies_timeout_ms",
        "vies_max_attempts",
        "rate_window_ms",
        "rate_limit",
    )
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("vies_backoff_ms", "cache_ttl_hours")
    @classmethod
    def must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("cache_namespace")
    @classmethod
    def strip_namespace(cls, v: str) -> str:
        v = v.strip().strip("/")
        if not v:
            raise ValueError("CACHE_NS must not be empty")
        return v

    @property
    def vies_timeout_seconds(self) -> float:
        return self.vies_timeout_ms / 1000

    @property
    def vies_backoff_seconds(self) -> float:
        return self.vies_backoff_ms / 1000

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_hours * 3600

    @property
    def store_enabled(self) -> bool:
        """Check if a shared (Redis) store is configured."""
        return bool(self.redis_url)


@lru_cache
def get_settings() -> Settings:
    return Settings()
