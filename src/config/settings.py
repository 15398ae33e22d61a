"""
Configuration Management for Business Manager

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every external collaborator (remote database, calendar, e-mail) gets its
own settings class with its own environment prefix, loaded lazily so the
app still starts in guest mode when none of them are configured.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FirebaseSettings(BaseSettings):
    """Firebase Realtime Database configuration (authenticated mode)."""

    model_config = SettingsConfigDict(
        env_prefix="FIREBASE_",
        extra="ignore"
    )

    database_url: str = Field(
        ...,
        description="Realtime Database URL, e.g. https://<project>.firebasedatabase.app"
    )
    credentials_path: Optional[str] = Field(
        default=None,
        description="Optional service account JSON used instead of user id tokens"
    )
    timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="HTTP timeout for database requests"
    )
    subscribe_attempts: int = Field(
        default=5,
        ge=1,
        description="Stream attempts before a subscription gives up"
    )
    subscribe_backoff_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Base wait between subscription attempts"
    )

    @field_validator('database_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: Optional[str]) -> Optional[str]:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if v and not Path(v).exists():
            import warnings
            warnings.warn(
                f"Firebase credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class GoogleCalendarSettings(BaseSettings):
    """Google Calendar sync configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_CALENDAR_",
        extra="ignore"
    )

    api_base_url: str = Field(
        default="https://www.googleapis.com/calendar/v3",
        description="Calendar API base URL"
    )
    calendar_id: str = Field(
        default="primary",
        description="Calendar that receives job events"
    )
    time_zone: str = Field(
        default="Asia/Jakarta",
        description="Time zone attached to created events"
    )
    event_duration_minutes: int = Field(
        default=60,
        ge=1,
        le=24 * 60,
        description="Length of a timed event created from a job deadline"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
    )


class ResendSettings(BaseSettings):
    """Resend transactional e-mail configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RESEND_",
        extra="ignore"
    )

    api_key: Optional[str] = Field(
        default=None,
        description="Resend API key; reminders are not e-mailed without it"
    )
    api_url: str = Field(
        default="https://api.resend.com/emails",
        description="Resend send-email endpoint"
    )
    sender: str = Field(
        default="Business Manager <onboarding@resend.dev>",
        description="From address for reminder e-mails"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR)$",
        description="Root log level"
    )
    log_format: str = Field(
        default="json",
        pattern="^(json|console)$",
        description="structlog renderer"
    )

    # Guest mode / local files
    data_dir: str = Field(
        default=".business_manager",
        description="Directory for guest data, reminder markers and audit log"
    )
    guest_data_filename: str = Field(
        default="guest_businesses.json",
        description="Serialized guest businesses blob"
    )
    notified_markers_filename: str = Field(
        default="notified_reminders.json",
        description="Already-reminded markers"
    )
    audit_log_filename: str = Field(
        default="audit_log.jsonl",
        description="Append-only audit log"
    )

    # Reminders
    reminder_lookahead_days: int = Field(
        default=3,
        ge=0,
        le=31,
        description="How many days ahead recurring jobs are scanned"
    )
    reminder_max_days: int = Field(
        default=3,
        ge=1,
        le=31,
        description="Only deadlines at most this many days away are reminded"
    )
    reminder_interval_seconds: int = Field(
        default=60,
        ge=1,
        description="How often the deadline scan runs"
    )
    reminder_email: Optional[str] = Field(
        default=None,
        description="Address that receives reminder e-mails"
    )

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()

    @property
    def guest_data_path(self) -> Path:
        return self.data_path / self.guest_data_filename

    @property
    def notified_markers_path(self) -> Path:
        return self.data_path / self.notified_markers_filename

    @property
    def audit_log_path(self) -> Path:
        return self.data_path / self.audit_log_filename


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def firebase(self) -> FirebaseSettings:
        return FirebaseSettings()

    @property
    def google_calendar(self) -> GoogleCalendarSettings:
        return GoogleCalendarSettings()

    @property
    def resend(self) -> ResendSettings:
        return ResendSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a
    `<name>_error` entry for every section that failed.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("firebase", "google_calendar", "resend", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
