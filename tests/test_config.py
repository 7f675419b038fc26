"""Tests for configuration loading."""

import pytest

from pydantic import ValidationError as PydanticValidationError

from smart_expense.config import (
    DisplaySettings,
    LedgerSettings,
    get_settings,
    validate_all_settings,
)


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestLedgerSettings:
    """Tests for engine settings."""

    def test_defaults(self):
        """Test the documented defaults."""
        settings = LedgerSettings()
        assert settings.daily_window_days == 30
        assert settings.top_categories_limit == 5
        assert settings.max_catch_up_periods == 1000
        assert settings.goal_funding_mode == "incremental"
        assert settings.goal_funding_failure_policy == "proceed"
        assert settings.storage_retry_attempts == 3

    def test_env_override(self, monkeypatch):
        """Test LEDGER_ environment variables."""
        monkeypatch.setenv("LEDGER_DAILY_WINDOW_DAYS", "7")
        monkeypatch.setenv("LEDGER_GOAL_FUNDING_MODE", "recompute")
        settings = LedgerSettings()
        assert settings.daily_window_days == 7
        assert settings.goal_funding_mode == "recompute"

    def test_rejects_unknown_policy(self):
        """Test that the failure policy is restricted."""
        with pytest.raises(PydanticValidationError):
            LedgerSettings(goal_funding_failure_policy="ignore")


class TestDisplaySettings:
    """Tests for display settings."""

    def test_currency_is_normalized(self):
        """Test that currency codes are upper-cased."""
        assert DisplaySettings(currency=" eur ").currency == "EUR"

    def test_default_currency(self):
        """Test the default currency."""
        assert DisplaySettings().currency == "IDR"

    def test_rejects_unsupported_currency(self):
        """Test that unknown currencies are refused."""
        with pytest.raises(PydanticValidationError):
            DisplaySettings(currency="XYZ")


class TestSettingsRoot:
    """Tests for the cached root settings."""

    def test_get_settings_is_cached(self):
        """Test that the same object is returned."""
        assert get_settings() is get_settings()

    def test_validate_all_settings(self):
        """Test that every group loads by default."""
        results = validate_all_settings()
        assert results == {"ledger": True, "display": True, "app": True}

    def test_validate_reports_bad_group(self, monkeypatch):
        """Test that a broken group is reported with its error."""
        monkeypatch.setenv("DISPLAY_CURRENCY", "XYZ")
        results = validate_all_settings()
        assert results["display"] is False
        assert "display_error" in results
        assert results["ledger"] is True
