"""Environment-driven settings for the rooms and bookings services."""
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Every field can be overridden by the upper-cased environment variable or ``.env``."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Storage
    database_url: str = Field(
        default="sqlite:///./roombooking.db",
        description="SQLAlchemy URL; SQLite for development, PostgreSQL in deployment.",
    )
    run_db_migrations: bool = Field(default=False, description="Create missing tables when the service starts.")
    transaction_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Lock wait budget inside a booking transaction before it is aborted as retryable.",
    )

    # Identity
    jwt_secret: str = Field(default="super-secret")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60, description="Lifetime of tokens minted by create_access_token.")

    # HTTP surface
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    rate_limiting_enabled: bool = Field(default=True, description="Turn SlowAPI off, e.g. under test.")
    default_rate_limit: str = Field(default="30/minute")
    read_rate_limit: str = Field(default="60/minute")
    write_rate_limit: str = Field(default="20/minute")
    topology_write_rate_limit: str = Field(default="15/minute")
    room_cache_ttl: int = Field(default=60, ge=0, description="Seconds a floor/room listing stays cached.")
    log_dir: str = Field(default="logs", description="Directory holding one audit log file per service.")
    rooms_service_port: int = 8002
    bookings_service_port: int = 8003

    # Scheduling rules
    scheduling_timezone: str = Field(
        default="UTC",
        description="IANA zone in which booking dates and wall-clock times are expressed.",
    )
    max_recurring_occurrences: int = Field(
        default=366,
        ge=1,
        description="Series longer than this are truncated.",
    )

    # Notifications
    rabbitmq_enabled: bool = Field(default=False)
    rabbitmq_host: str = Field(default="rabbitmq")
    rabbitmq_queue: str = Field(default="bookings", description="Durable queue receiving booking events.")


@lru_cache
def get_settings() -> Settings:
    return Settings()


def reset_settings_cache() -> None:
    """Forget the cached Settings so the next call re-reads the environment."""

    get_settings.cache_clear()
