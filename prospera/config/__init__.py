"""Configuration package."""

from prospera.config.settings import (
    AppSettings,
    EmailSettings,
    InsightSettings,
    Settings,
    SupabaseSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "EmailSettings",
    "InsightSettings",
    "Settings",
    "SupabaseSettings",
    "get_settings",
    "validate_all_settings",
]
