"""
Timezone helpers for user-local notification policy.

All functions take an IANA zone name and an instant. The instant defaults to
the current time; naive datetimes are interpreted as UTC (the storage
convention of every model in this project).
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import NamedTuple, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


DEFAULT_TIMEZONE = "America/New_York"


class LocalTime(NamedTuple):
    """Wall-clock time of day in a user's zone."""
    hours: int
    minutes: int
    total_minutes: int


def _as_utc(instant: Optional[datetime]) -> datetime:
    if instant is None:
        return datetime.now(timezone.utc)
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def _local(tz: str, instant: Optional[datetime]) -> datetime:
    return _as_utc(instant).astimezone(ZoneInfo(tz))


def resolve_timezone(raw: Optional[str], fallback: str = DEFAULT_TIMEZONE) -> str:
    """
    Return raw if it names a valid IANA zone, else fallback. Never raises.

    Args:
        raw: Zone name as stored on the user (may be None, empty or garbage)
        fallback: Zone to use when raw is unusable

    Returns:
        A zone name accepted by ZoneInfo
    """
    if not raw:
        return fallback
    try:
        ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return fallback
    return raw


def get_local_time(tz: str, instant: Optional[datetime] = None) -> LocalTime:
    """Wall-clock hours and minutes in tz (hours in 0..23)."""
    local = _local(tz, instant)
    hours = local.hour % 24
    return LocalTime(hours=hours, minutes=local.minute, total_minutes=hours * 60 + local.minute)


def get_local_hour(tz: str, instant: Optional[datetime] = None) -> int:
    return get_local_time(tz, instant).hours


def get_local_date(tz: str, instant: Optional[datetime] = None) -> str:
    """Local calendar date in tz as "YYYY-MM-DD"."""
    return _local(tz, instant).date().isoformat()


def get_local_day_of_week(tz: str, instant: Optional[datetime] = None) -> int:
    """ISO weekday in tz: 1 = Monday ... 7 = Sunday."""
    return _local(tz, instant).isoweekday()


def get_iso_week(tz: str, instant: Optional[datetime] = None) -> str:
    """ISO week of the local date in tz as "YYYY-Www"."""
    iso_year, iso_week, _ = _local(tz, instant).date().isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def parse_hhmm(value: Optional[str]) -> int:
    """
    Parse "HH:mm" into minutes since midnight.

    Missing or malformed parts count as 0, so "22" is 22:00 and "" is 00:00.
    """
    parts = (value or "").split(":")

    def _part(index: int) -> int:
        try:
            return int(parts[index])
        except (IndexError, ValueError):
            return 0

    return _part(0) * 60 + _part(1)


def is_in_quiet_hours(
    tz: str,
    start: str,
    end: str,
    instant: Optional[datetime] = None,
) -> bool:
    """
    Check whether the instant falls inside the user's quiet window.

    Args:
        tz: User's IANA zone
        start: Window start "HH:mm" (local)
        end: Window end "HH:mm" (local, exclusive)
        instant: Moment to test (defaults to now)

    Returns:
        False when start == end (empty window). When start < end the window
        is [start, end). When start > end it wraps midnight.
    """
    start_minutes = parse_hhmm(start)
    end_minutes = parse_hhmm(end)
    if start_minutes == end_minutes:
        return False

    now_minutes = get_local_time(tz, instant).total_minutes
    if start_minutes < end_minutes:
        return start_minutes <= now_minutes < end_minutes
    return now_minutes >= start_minutes or now_minutes < end_minutes


def is_local_hour_match(tz: str, target_hhmm: str, instant: Optional[datetime] = None) -> bool:
    """True when the local hour in tz equals the hour of target_hhmm."""
    return get_local_hour(tz, instant) == parse_hhmm(target_hhmm) // 60


def next_quiet_hours_end(tz: str, end: str, instant: Optional[datetime] = None) -> datetime:
    """
    Next local occurrence of the quiet window end, as an aware UTC datetime.

    Used to stamp quiet-hours suppressions with the moment they may be
    redelivered.
    """
    zone = ZoneInfo(tz)
    local_now = _local(tz, instant)
    end_minutes = parse_hhmm(end)
    end_time = time(hour=(end_minutes // 60) % 24, minute=end_minutes % 60)

    candidate = datetime.combine(local_now.date(), end_time, tzinfo=zone)
    if candidate <= local_now:
        candidate = datetime.combine(local_now.date() + timedelta(days=1), end_time, tzinfo=zone)
    return candidate.astimezone(timezone.utc)


def local_day_bounds_utc(tz: str, instant: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    UTC bounds [start, end) of the user's current local calendar day.

    Returns naive UTC datetimes, ready for comparison with stored columns.
    """
    zone = ZoneInfo(tz)
    local_today: date = _local(tz, instant).date()
    start = datetime.combine(local_today, time.min, tzinfo=zone)
    end = datetime.combine(local_today + timedelta(days=1), time.min, tzinfo=zone)
    return (
        start.astimezone(timezone.utc).replace(tzinfo=None),
        end.astimezone(timezone.utc).replace(tzinfo=None),
    )


def to_naive_utc(instant: Optional[datetime] = None) -> datetime:
    """Normalize an instant to the naive-UTC storage convention."""
    return _as_utc(instant).replace(tzinfo=None)
