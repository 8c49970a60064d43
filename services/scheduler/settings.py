"""
Settings and configuration for the Scheduler Service.
"""

from typing import Optional

from services.common.settings import (
    AliasChoices,
    BaseSettings,
    Field,
    SettingsConfigDict,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    db_url_scheduler: str = Field(
        default="sqlite:///./scheduler.sqlite3",
        description="Database connection string for the scheduler service",
        validation_alias=AliasChoices("DB_URL_SCHEDULER"),
    )

    repository_backend: str = Field(
        default="sql",
        description="Meeting storage backend (sql or memory)",
        validation_alias=AliasChoices("REPOSITORY_BACKEND"),
    )

    api_frontend_scheduler_key: str = Field(
        default=...,  # required
        description="Frontend API key to access the scheduler service",
        validation_alias=AliasChoices("API_FRONTEND_SCHEDULER_KEY"),
    )

    office_service_url: Optional[str] = Field(
        default=None,
        description="URL for the office service; calendar sync is disabled when unset",
        validation_alias=AliasChoices("OFFICE_SERVICE_URL"),
    )

    api_scheduler_office_key: Optional[str] = Field(
        default=None,
        description="API key for the scheduler service to access the office service",
        validation_alias=AliasChoices("API_SCHEDULER_OFFICE_KEY"),
    )

    calendar_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for calendar provider requests",
        validation_alias=AliasChoices("CALENDAR_TIMEOUT_SECONDS"),
    )

    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Base URL used to build participant invitation links",
        validation_alias=AliasChoices("FRONTEND_URL"),
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias=AliasChoices("LOG_LEVEL"),
    )
    log_format: str = Field(
        default="json",
        description="Log format (json or text)",
        validation_alias=AliasChoices("LOG_FORMAT"),
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
