"""Centralized locale service for currency and date formatting.

Uses babel for locale-aware output.

Configuration:
    LOCALE env var (default: es_AR) - determines currency, number/date formatting

Example:
    format_amount(Decimal("1000")) renders as "$ 1.000,00" under es_AR
"""

import logging
from datetime import date
from decimal import Decimal

from babel import Locale, UnknownLocaleError
from babel.dates import format_date as babel_format_date
from babel.numbers import format_currency as babel_format_currency
from babel.numbers import get_territory_currencies

from gymledger.services import settings

logger = logging.getLogger(__name__)

# Default locale if LOCALE setting is invalid or missing
DEFAULT_LOCALE = "es_AR"
DEFAULT_CURRENCY = "ARS"


def _get_locale() -> str:
    """Get configured locale with validation and fallback."""
    locale_str = settings.locale or DEFAULT_LOCALE
    try:
        Locale.parse(locale_str)
        return locale_str
    except (UnknownLocaleError, ValueError) as e:
        logger.warning(f"Invalid LOCALE '{locale_str}': {e}. Falling back to '{DEFAULT_LOCALE}'")
        return DEFAULT_LOCALE


def _get_currency_from_locale(locale_str: str) -> str:
    """Derive currency code from locale territory."""
    try:
        territory = Locale.parse(locale_str).territory
        if territory:
            currencies = get_territory_currencies(territory)
            if currencies:
                return currencies[0]
    except (UnknownLocaleError, ValueError) as e:
        logger.warning(f"Could not derive currency from locale '{locale_str}': {e}")
    return DEFAULT_CURRENCY


# Module-level constants (computed once at import)
LOCALE = _get_locale()
CURRENCY = _get_currency_from_locale(LOCALE)


def format_amount(amount: Decimal | int | float) -> str:
    """Format monetary amount according to locale.

    Example:
        format_amount(Decimal("1234.5")) -> "$ 1.234,50" (es_AR)
    """
    return babel_format_currency(Decimal(str(amount)), CURRENCY, locale=LOCALE)


def format_display_date(value: date | None) -> str:
    """Day-first date such as '01/03/2024'; '?' when unknown."""
    if value is None:
        return "?"
    return babel_format_date(value, format="dd/MM/yyyy", locale=LOCALE)


def format_period(start: date | None, end: date | None) -> str:
    """Billing period as 'start - end'."""
    return f"{format_display_date(start)} - {format_display_date(end)}"


__all__ = [
    "LOCALE",
    "CURRENCY",
    "format_amount",
    "format_display_date",
    "format_period",
]
