"""
Configuration Management for the Ledger Core

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here and passed into the
components that need it. The engines never read global state (no
"current currency" singleton), which keeps them unit-testable.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SUPPORTED_CURRENCIES = ("IDR", "USD", "EUR", "GBP", "JPY")


class LedgerSettings(BaseSettings):
    """Behaviour of the scheduler, aggregation and funding engines."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        extra="ignore"
    )

    daily_window_days: int = Field(
        default=30,
        ge=1,
        le=366,
        description="Length of the trailing daily series"
    )
    top_categories_limit: int = Field(
        default=5,
        ge=1,
        description="How many categories the breakdowns keep"
    )
    max_catch_up_periods: int = Field(
        default=1000,
        ge=1,
        description="Upper bound on occurrences materialized per rule per pass"
    )
    goal_funding_mode: str = Field(
        default="incremental",
        pattern="^(incremental|recompute)$",
        description=(
            "incremental: add linked amounts when transactions are created; "
            "recompute: rebuild goal totals from linked transactions on load"
        )
    )
    goal_funding_failure_policy: str = Field(
        default="proceed",
        pattern="^(proceed|rollback)$",
        description="What to do with a transaction whose linked goal is missing"
    )
    storage_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for store reads that hit connection errors"
    )


class DisplaySettings(BaseSettings):
    """Display preferences for the formatting layer."""

    model_config = SettingsConfigDict(
        env_prefix="DISPLAY_",
        extra="ignore"
    )

    currency: str = Field(
        default="IDR",
        description="Display-only currency label"
    )
    fraction_digits: int = Field(
        default=0,
        ge=0,
        le=4,
        description="Decimal places shown for amounts"
    )

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        code = v.strip().upper()
        if code not in SUPPORTED_CURRENCIES:
            raise ValueError(
                f"Unsupported currency: {v}. Allowed: {', '.join(SUPPORTED_CURRENCIES)}"
            )
        return code


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

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
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

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def display(self) -> DisplaySettings:
        return DisplaySettings()

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
    Validate all settings groups load.

    Returns a dict of {setting_name: is_valid}, with an
    `<name>_error` entry for each group that failed.
    """
    results = {}
    settings = get_settings()

    for name in ("ledger", "display", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
