"""Calendar Utilities - Pure functions for day keys, ranges and months.

Days are handled as datetime.date internally. The canonical YYYY-MM-DD and
YYYY-MM strings only appear at the storage and presentation boundary.

Owners keep their calendar in their own IANA timezone; "now" for an owner is
the current instant seen through that zone.
"""

import calendar
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


DEFAULT_TIMEZONE = "UTC"


def is_known_timezone(name: str) -> bool:
    """True if `name` is an IANA zone available to zoneinfo."""
    if not name:
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return False
    return True


def local_now(tz_name: str, now: datetime | None = None) -> datetime:
    """Wall-clock time in the owner's zone.

    Args:
        tz_name: IANA zone name, e.g. "America/New_York"
        now: Aware instant to convert (defaults to the current UTC time)
    """
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(ZoneInfo(tz_name))


def local_today(tz_name: str, now: datetime | None = None) -> date:
    """Calendar day the owner is currently living in."""
    return local_now(tz_name, now).date()


def day_key(day: date) -> str:
    """Canonical YYYY-MM-DD key for a day."""
    return day.isoformat()


def parse_day_key(key: str) -> date:
    """Parse a YYYY-MM-DD key back into a date."""
    return date.fromisoformat(key)


def date_range(days: int, today: date | None = None) -> list[date]:
    """Return the most recent days ending today, oldest first.

    Args:
        days: Number of days in the range
        today: Last day of the range (defaults to the current local day)

    Returns:
        List of exactly `days` dates (empty if days <= 0)
    """
    if today is None:
        today = date.today()
    return [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]


def month_key(day: date | None = None) -> str:
    """YYYY-MM key of the month containing `day` (defaults to today)."""
    if day is None:
        day = date.today()
    return f"{day.year:04d}-{day.month:02d}"


def days_in_month(month: str) -> int:
    """Number of calendar days in a YYYY-MM month, leap years included."""
    year, month_num = (int(part) for part in month.split("-"))
    return calendar.monthrange(year, month_num)[1]


def in_month(day: date, month: str) -> bool:
    """True if `day` falls within the YYYY-MM month."""
    return month_key(day) == month


def clock_minute(now: datetime) -> str:
    """HH:MM wall-clock reading used to match scheduled times."""
    return now.strftime("%H:%M")
