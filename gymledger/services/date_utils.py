"""Date helpers: safe conversion of stored date values and civil "today".

Stored dates arrive in several shapes (date objects, datetimes, ISO strings,
epoch seconds, timestamp-like dicts or objects). safe_to_date() turns any of
them into a calendar date or None, never raising.
"""

import logging
from datetime import date, datetime, timedelta, timezone

from babel.dates import get_timezone

from gymledger.services import settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = settings.gym_timezone


def safe_to_date(value, tz: str | None = None) -> date | None:
    """Convert a heterogeneous stored date value to a calendar date.

    Args:
        value: date, datetime, 'YYYY-MM-DD' / ISO-8601 string, epoch seconds,
            {"seconds": ...} mapping or an object exposing to_date()/toDate()
        tz: Timezone name used to localize aware datetimes and epoch values
            (default: configured gym timezone)

    Returns:
        The calendar date, or None if the value cannot be interpreted
    """
    if value is None or value == "":
        return None

    zone = get_timezone(tz or DEFAULT_TIMEZONE)
    try:
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                return value.astimezone(zone).date()
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return datetime.fromtimestamp(value, tz=timezone.utc).astimezone(zone).date()
        if isinstance(value, dict) and "seconds" in value:
            return safe_to_date(float(value["seconds"]), tz)
        for method_name in ("to_date", "toDate", "to_datetime"):
            method = getattr(value, method_name, None)
            if callable(method):
                return safe_to_date(method(), tz)
        if isinstance(value, str):
            text = value.strip()
            if len(text) == 10:
                return date.fromisoformat(text)
            return safe_to_date(datetime.fromisoformat(text.replace("Z", "+00:00")), tz)
    except (ValueError, TypeError, OverflowError, OSError) as e:
        logger.debug("Could not convert %r to a date: %s", value, e)
        return None

    logger.debug("Unsupported date value type: %s", type(value).__name__)
    return None


def today(tz: str | None = None) -> date:
    """Current civil date in the gym timezone."""
    return datetime.now(get_timezone(tz or DEFAULT_TIMEZONE)).date()


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def add_days(start: date, days: int) -> date:
    return start + timedelta(days=days)


def duration_days(start, end, default: int = 30) -> int:
    """Length in days of a billing period, or the default when unknown."""
    start_date = safe_to_date(start)
    end_date = safe_to_date(end)
    if start_date is None or end_date is None:
        return default
    days = (end_date - start_date).days
    return days if days > 0 else default


def month_key(day: date) -> str:
    """'YYYY-MM' key of the month containing day."""
    return day.strftime("%Y-%m")


__all__ = [
    "safe_to_date",
    "today",
    "now_utc",
    "add_days",
    "duration_days",
    "month_key",
]
