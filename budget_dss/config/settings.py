"""
Configuration Management for Budget DSS

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The planning engines never read settings themselves; the orchestrator
passes these values into them, so every engine stays a pure function
of its arguments.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DSSSettings(BaseSettings):
    """Tunables of the planning pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="DSS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    amortization_max_months: int = Field(
        default=600,
        ge=12,
        le=1200,
        description="Iteration cap for the debt amortization simulation"
    )
    min_goal_contribution: float = Field(
        default=100000.0,
        ge=0.0,
        description="Per-goal currency floor applied when the goals pool is nonzero"
    )
    consistency_threshold: float = Field(
        default=0.10,
        gt=0.0,
        le=1.0,
        description="AHP consistency ratio cutoff"
    )
    tradeoff_step_percent: int = Field(
        default=25,
        ge=1,
        le=50,
        description="Granularity of goal/debt tradeoff candidates"
    )
    default_goal_allocation_pct: float = Field(
        default=20.0,
        ge=0.0,
        le=100.0,
        description="Initial share of discretionary surplus for goals"
    )
    flexible_max_multiplier: float = Field(
        default=1.5,
        ge=1.0,
        description="Implied maximum for flexible constraints without one"
    )
    session_ttl_minutes: int = Field(
        default=60,
        ge=1,
        description="How long a month's workflow session stays cached"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    month_states_sheet_name: str = Field(
        default="MonthStates",
        description="Name of the sheet holding month state versions"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


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
    storage_backend: str = Field(
        default="memory",
        pattern="^(memory|google_sheets)$",
        description="Where month states and audit events are persisted"
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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def dss(self) -> DSSSettings:
        return DSSSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

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

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("dss", "google_sheets", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
