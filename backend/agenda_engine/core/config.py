"""Application configuration via pydantic settings."""

from functools import lru_cache
from pathlib import Path

from typing import Any

from pydantic import Field
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed application configuration."""

    app_env: str = Field("local", alias="APP_ENV")
    app_name: str = "Agenda Scheduling API"
    api_v1_prefix: str = "/api/v1"

    database_url: str = Field(..., alias="DATABASE_URL")
    sync_database_url: str | None = Field(default=None, alias="SYNC_DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    rate_limit_booking: str = Field("20/minute", alias="RATE_LIMIT_BOOKING")

    slot_lock_timeout_seconds: float = Field(5.0, alias="SLOT_LOCK_TIMEOUT_SECONDS")
    slot_lock_max_attempts: int = Field(3, ge=1, alias="SLOT_LOCK_MAX_ATTEMPTS")
    slot_lock_backoff_max_seconds: float = Field(
        2.0, alias="SLOT_LOCK_BACKOFF_MAX_SECONDS"
    )
    default_offer_ttl_minutes: int = Field(
        240, ge=1, alias="DEFAULT_OFFER_TTL_MINUTES"
    )
    offer_sweep_interval_seconds: int = Field(
        60, ge=0, alias="OFFER_SWEEP_INTERVAL_SECONDS"
    )
    scheduler_enabled: bool = Field(default=True, alias="SCHEDULER_ENABLED")

    cors_allow_credentials: bool = Field(default=False, alias="CORS_ALLOW_CREDENTIALS")
    cors_allowlist: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173"], alias="CORS_ALLOWLIST"
    )

    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[3] / ".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("cors_allowlist", mode="before")
    @classmethod
    def _split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()  # type: ignore[call-arg]
