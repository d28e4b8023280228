"""
Configuration Management for Bill Split Ledger

Every knob is read from the environment (or .env) by pydantic-settings,
grouped by concern with one env prefix per group.

DESIGN DECISION: The persistence gateway is built from these settings
at process start, so a missing spreadsheet ID or credentials file shows up as a
ConfigurationError right away instead of a silently-null store handle.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Required configuration is missing or invalid."""
    pass


class GoogleSheetsSettings(BaseSettings):
    """Spreadsheet holding the settlement document and the monthly records."""

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

    # Worksheet titles
    settlement_sheet_name: str = Field(
        default="Settlements",
        description="Name of the sheet holding the settlement document"
    )
    monthly_sheet_name: str = Field(
        default="MonthlyRecords",
        description="Name of the sheet holding monthly snapshots"
    )
    connection_test_sheet_name: str = Field(
        default="ConnectionTest",
        description="Name of the sheet read by the connectivity probe"
    )
    settlement_doc_id: str = Field(
        default="default",
        description="Key of the single settlement document"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Only warn: the file may be mounted after the settings are read."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Service account file {v} does not exist yet; "
                "connecting to Google Sheets will fail until it does."
            )
        return v


class SyncSettings(BaseSettings):
    """Debounce, retry and timeout knobs for remote synchronization."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        extra="ignore"
    )

    debounce_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=10.0,
        description="Quiet period before a burst of edits is saved"
    )
    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum attempts per remote call"
    )
    retry_base_delay_seconds: float = Field(
        default=0.5,
        ge=0.0,
        le=10.0,
        description="Linear backoff step (attempt x base delay)"
    )
    request_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        le=60.0,
        description="Time bound for a single remote call"
    )
    history_limit: int = Field(
        default=12,
        ge=1,
        le=120,
        description="Number of monthly snapshots returned for trend display"
    )


class AppSettings(BaseSettings):
    """Process-wide flags such as the log level."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Deployment name, e.g. development or production"
    )
    debug_mode: bool = Field(
        default=False,
        description="Verbose local behaviour"
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level for local structured logs"
    )

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class Settings(BaseSettings):
    """Entry point to every settings group."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Groups are built on access, so an unconfigured spreadsheet does not
    # stop the sync or app settings from loading

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """Process-wide Settings instance; cache_clear() forces a re-read."""
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Try to build every settings group.

    Returns {group: ok}, plus {group}_error with the message for each
    group that failed.
    """
    results = {}

    settings = get_settings()

    for name in ("google_sheets", "sync", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
