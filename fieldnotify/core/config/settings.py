# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

Settings are loaded from environment variables with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from fieldnotify.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> settings.planning.reminder_days_ahead
    14
"""

from functools import lru_cache
from typing import Literal, Self
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PlanningSettings(BaseSettings):
    """Automatic planning policy configuration.

    Attributes:
        reminder_days_ahead: Days before the inspection due date on which
            the reminder becomes due.
        reminders_enabled: Whether inspection reminders are planned at all.
        expiration_day_enabled: Whether a notice is planned on the due date.
        max_retries: Retry budget given to new notifications.
        send_hour: Local hour at which automatic notifications are scheduled.
        timezone: IANA timezone used for calendar-day boundaries.
        retention_days: Age after which terminal entries are pruned.
        refresh_cron: Cron expression for the periodic planning refresh.
        cleanup_cron: Cron expression for the retention cleanup.
        scheduler_enabled: Whether periodic jobs are registered at startup.
    """

    model_config = SettingsConfigDict(
        env_prefix="PLANNING_",
        extra="ignore",
    )

    reminder_days_ahead: int = Field(default=14, ge=0, le=365)
    reminders_enabled: bool = True
    expiration_day_enabled: bool = True
    max_retries: int = Field(default=3, ge=0)
    send_hour: int = Field(default=9, ge=0, le=23)
    timezone: str = "UTC"
    retention_days: int = Field(default=30, ge=1)
    refresh_cron: str = "0 6 * * *"
    cleanup_cron: str = "30 3 * * 0"
    scheduler_enabled: bool = True

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Reject unknown IANA timezone names early."""
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value


class DatabaseSettings(BaseSettings):
    """Database configuration for the SQL notification store.

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    user: str = "fieldnotify"
    password: SecretStr = SecretStr("fieldnotify_password")
    host: str = "localhost"
    port: int = 5432
    database: str = "fieldnotify"
    pool_size: int = 10
    max_overflow: int = 20

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"

    @property
    def sync_url(self) -> str:
        """Build the sync database URL for schema tooling."""
        pwd = self.password.get_secret_value()
        return f"postgresql://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class APISettings(BaseSettings):
    """API server configuration.

    Attributes:
        title: OpenAPI title.
        prefix: Path prefix of the versioned API.
        default_page_size: Page size used when the caller gives none.
        max_page_size: Largest page a caller may request.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        extra="ignore",
    )

    title: str = "fieldnotify"
    prefix: str = "/api/v1"
    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=200, ge=1)


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        storage_backend: Which NotificationStore implementation to build.
        planning: Automatic planning policy settings.
        database: Database settings.
        api: API server settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"
    storage_backend: Literal["memory", "database"] = "memory"

    planning: PlanningSettings = Field(default_factory=PlanningSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    api: APISettings = Field(default_factory=APISettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with development defaults.
        """
        if self.environment == "production":
            if self.debug:
                raise ValueError(
                    "Debug mode must be disabled in production. Set DEBUG=false."
                )
            if self.storage_backend == "memory":
                raise ValueError(
                    "The in-memory store is not durable. Set STORAGE_BACKEND=database in production."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
