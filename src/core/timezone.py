"""Canonical calendar arithmetic for streaks and weekly points.

Every calendar-day decision is made in the single application timezone from
settings, never in the caller's device timezone.
"""

from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

from src.core.config import settings


def app_zone(tz_name: str | None = None) -> ZoneInfo:
    """Return the canonical application timezone."""
    return ZoneInfo(tz_name or settings.app_timezone)


def ensure_aware(moment: datetime) -> datetime:
    """Return ``moment`` as an aware instant, interpreting naive values as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


def to_app_date(moment: datetime, *, tz_name: str | None = None) -> date:
    """Convert an instant to its calendar date in the application timezone.

    Naive datetimes are interpreted as UTC.
    """
    return ensure_aware(moment).astimezone(app_zone(tz_name)).date()


def app_today(*, now: datetime | None = None, tz_name: str | None = None) -> date:
    """Today's calendar date in the application timezone."""
    return to_app_date(now or datetime.now(UTC), tz_name=tz_name)


def parse_app_date(value: str) -> date:
    """Parse a YYYY-MM-DD string as an application calendar date."""
    return date.fromisoformat(value)


def days_between(later: date, earlier: date) -> int:
    """Signed number of calendar days from ``earlier`` to ``later``."""
    return (later - earlier).days


def is_same_day(first: date, second: date) -> bool:
    return days_between(first, second) == 0


def are_consecutive_days(earlier: date, later: date) -> bool:
    return days_between(later, earlier) == 1


def week_bounds(moment: datetime, *, tz_name: str | None = None) -> tuple[datetime, datetime]:
    """Get the Monday 00:00 and next-Monday 00:00 bounds of the week containing ``moment``.

    Bounds are timezone-aware in the application timezone; the end is exclusive.
    """
    zone = app_zone(tz_name)
    local_day = to_app_date(moment, tz_name=tz_name)
    monday = local_day - timedelta(days=local_day.weekday())
    start = datetime(monday.year, monday.month, monday.day, tzinfo=zone)
    next_monday = monday + timedelta(days=7)
    end = datetime(next_monday.year, next_monday.month, next_monday.day, tzinfo=zone)
    return start, end
