"""Configuration package."""

from src.config.settings import (
    AppSettings,
    FirebaseSettings,
    GoogleCalendarSettings,
    ResendSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "FirebaseSettings",
    "GoogleCalendarSettings",
    "ResendSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
