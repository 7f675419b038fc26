"""Configuration package."""

from smart_expense.config.settings import (
    SUPPORTED_CURRENCIES,
    AppSettings,
    DisplaySettings,
    LedgerSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "SUPPORTED_CURRENCIES",
    "AppSettings",
    "DisplaySettings",
    "LedgerSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
