"""Display formatting for amounts and dates."""

from datetime import datetime, timedelta
from typing import Optional, Union

from smart_expense.config import DisplaySettings, get_settings
from smart_expense.models.ledger import to_naive_utc


# currency -> (prefix, suffix, group separator, decimal separator)
_CURRENCY_FORMATS = {
    "IDR": ("Rp ", "", ".", ","),
    "USD": ("$", "", ",", "."),
    "EUR": ("", " €", ".", ","),
    "GBP": ("£", "", ",", "."),
    "JPY": ("￥", "", ",", "."),
}


def format_currency(
    amount: Union[float, int],
    display: Optional[DisplaySettings] = None,
) -> str:
    """
    Format an amount in the display currency.

    Args:
        amount: The amount to format
        display: Display preferences; the configured ones when omitted

    Returns:
        Formatted string, e.g. "Rp 1.500.000" or "$1,500,000"

    Example:
        >>> format_currency(1500000, DisplaySettings(currency="EUR"))
        '1.500.000 €'
    """
    display = display or get_settings().display
    prefix, suffix, group, decimal = _CURRENCY_FORMATS[display.currency]
    digits = display.fraction_digits

    number = f"{abs(amount):,.{digits}f}"
    number = number.translate(str.maketrans({",": group, ".": decimal}))

    sign = "-" if amount < 0 and round(abs(amount), digits) > 0 else ""
    return f"{sign}{prefix}{number}{suffix}"


def format_date(when: datetime) -> str:
    """Format a date as e.g. "Mon, Jan 5, 2026"."""
    return f"{when:%a}, {when:%b} {when.day}, {when.year}"


def date_label(when: datetime, now: datetime) -> str:
    """"Today", "Yesterday", or the formatted date."""
    day = to_naive_utc(when).date()
    today = to_naive_utc(now).date()
    if day == today:
        return "Today"
    if day == today - timedelta(days=1):
        return "Yesterday"
    return format_date(when)
