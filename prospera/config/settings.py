"""
Configuration Management for Prospera

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The batch jobs and the HTTP endpoints read the same settings objects,
so what the cron scheduler sees is exactly what the API sees.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SupabaseSettings(BaseSettings):
    """Supabase (managed Postgres) connection configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SUPABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    url: str = Field(
        ...,
        description="Supabase project URL"
    )
    service_role_key: str = Field(
        ...,
        description="Service role key (batch jobs read across users)"
    )

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Project URLs are always https."""
        if not v.startswith("https://") and not v.startswith("http://localhost"):
            raise ValueError(f"Supabase URL must use https: {v}")
        return v.rstrip("/")


class EmailSettings(BaseSettings):
    """Alert email composition and queue processing."""

    model_config = SettingsConfigDict(
        env_prefix="EMAIL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    brand_name: str = Field(
        default="PROSPERA.AI",
        description="Brand shown in subjects and bodies"
    )
    platform_url: str = Field(
        default="https://prospera.ai/smart-alerts",
        description="Link appended to every digest"
    )
    from_address: str = Field(
        default="alertas@prospera.ai",
        description="Sender address for outbound mail"
    )
    immediate_batch_limit: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Max pending notifications delivered per run"
    )
    default_notification_time: str = Field(
        default="08:00:00",
        pattern=r"^\d{2}:\d{2}(:\d{2})?$",
        description="Send time used when a user has none configured"
    )


class InsightSettings(BaseSettings):
    """Insight generation behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="INSIGHTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    reuse_stored_alerts: bool = Field(
        default=False,
        description="Return the newest stored alerts instead of running rules"
    )
    stored_alert_limit: int = Field(
        default=10,
        ge=1,
        le=100,
        description="How many stored alerts to map to insights"
    )
    persist_generated: bool = Field(
        default=False,
        description="Write generated insights to the alerts table"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Shared secret for the cron-triggered email queue endpoint
    cron_job_key: Optional[str] = Field(
        default=None,
        description="Value expected in the x-admin-key header"
    )

    storage_backend: str = Field(
        default="supabase",
        pattern="^(supabase|memory)$",
        description="Row store implementation to use"
    )
    persist_audit_events: bool = Field(
        default=False,
        description="Also append audit events to the audit_events table"
    )


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

    # Sub-settings are loaded lazily so the in-memory backend
    # works without Supabase credentials.

    @property
    def supabase(self) -> SupabaseSettings:
        return SupabaseSettings()

    @property
    def email(self) -> EmailSettings:
        return EmailSettings()

    @property
    def insights(self) -> InsightSettings:
        return InsightSettings()

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

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for the failures.
    """
    results = {}

    settings = get_settings()

    for name in ("supabase", "email", "insights", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
