"""Wall-clock helpers. All scheduling math uses naive local datetimes."""

from __future__ import annotations

from datetime import date, datetime

from daychute.config import settings


def now_local() -> datetime:
    """Current wall-clock time in the configured zone, truncated to seconds."""
    zone = settings.get_zone()
    current = datetime.now(zone) if zone else datetime.now().astimezone()
    return current.replace(tzinfo=None, microsecond=0)


def to_local_naive(moment: datetime) -> datetime:
    """Convert an aware datetime to naive local wall time; naive values pass through."""
    if moment.tzinfo is None:
        return moment
    zone = settings.get_zone()
    local = moment.astimezone(zone) if zone else moment.astimezone()
    return local.replace(tzinfo=None)


def date_key(day: date) -> str:
    """``YYYY-MM-DD`` key used in every persisted map."""
    return day.isoformat()


def month_key(day: date) -> str:
    """``YYYY-MM`` key used to name monthly files."""
    return f"{day.year:04d}-{day.month:02d}"


def parse_date(value: object) -> date | None:
    """Parse a ``YYYY-MM-DD`` string (or pass a date through). Returns None otherwise."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def js_weekday(day: date) -> int:
    """Weekday with Sunday as 0, the convention used in stored routine fields."""
    return (day.weekday() + 1) % 7
