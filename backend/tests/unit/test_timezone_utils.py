"""
Unit tests for timezone utilities.

Covers local clock/date math across extreme offsets, quiet-hours windows
(same-day, overnight, empty), timezone resolution and ISO weeks.
"""

from datetime import datetime, timedelta, timezone

import pytest
from freezegun import freeze_time

from backend.src.utils.timezone_utils import (
    get_iso_week,
    get_local_date,
    get_local_day_of_week,
    get_local_hour,
    get_local_time,
    is_in_quiet_hours,
    is_local_hour_match,
    local_day_bounds_utc,
    next_quiet_hours_end,
    parse_hhmm,
    resolve_timezone,
)


NEW_YORK = "America/New_York"


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestLocalClock:
    """Tests for local time and date."""

    def test_local_time_in_new_york(self):
        local = get_local_time(NEW_YORK, utc(2025, 1, 15, 4, 30))
        assert (local.hours, local.minutes) == (23, 30)
        assert local.total_minutes == 23 * 60 + 30

    def test_midnight_is_hour_zero(self):
        assert get_local_hour("UTC", utc(2025, 1, 15, 0, 0)) == 0

    def test_extreme_offsets_give_different_dates(self):
        """UTC+14 and UTC-12 are on different calendar days at the same instant."""
        instant = utc(2025, 1, 15, 12, 0)
        assert get_local_date("Pacific/Kiritimati", instant) == "2025-01-16"
        assert get_local_date("Etc/GMT+12", instant) == "2025-01-15"

    def test_naive_instant_treated_as_utc(self):
        assert get_local_date(NEW_YORK, datetime(2025, 1, 15, 3, 0)) == "2025-01-14"

    def test_day_of_week_monday_is_one(self):
        assert get_local_day_of_week("UTC", utc(2025, 1, 13, 12)) == 1
        assert get_local_day_of_week("UTC", utc(2025, 1, 19, 12)) == 7

    def test_day_of_week_uses_local_date(self):
        """Monday 02:00 UTC is still Sunday in New York."""
        assert get_local_day_of_week(NEW_YORK, utc(2025, 1, 13, 2)) == 7

    @freeze_time("2025-01-15 17:00:00")
    def test_defaults_to_now(self):
        assert get_local_date(NEW_YORK) == "2025-01-15"
        assert get_local_hour(NEW_YORK) == 12

    def test_iso_week(self):
        assert get_iso_week("UTC", utc(2025, 1, 13, 12)) == "2025-W03"
        # Monday 2024-12-30 belongs to ISO week 1 of 2025
        assert get_iso_week("UTC", utc(2024, 12, 30, 12)) == "2025-W01"


class TestParseHHMM:
    """Tests for parse_hhmm."""

    @pytest.mark.parametrize("value,expected", [
        ("22:00", 1320),
        ("08:30", 510),
        ("22", 1320),
        ("", 0),
        (None, 0),
        ("ab:cd", 0),
    ])
    def test_parse(self, value, expected):
        assert parse_hhmm(value) == expected


class TestQuietHours:
    """Tests for is_in_quiet_hours."""

    def test_overnight_window_late_evening(self):
        """23:30 local in New York is inside 22:00-08:00."""
        assert is_in_quiet_hours(NEW_YORK, "22:00", "08:00", utc(2025, 1, 16, 4, 30))

    def test_overnight_window_morning(self):
        """09:00 local in New York is outside 22:00-08:00."""
        assert not is_in_quiet_hours(NEW_YORK, "22:00", "08:00", utc(2025, 1, 16, 14, 0))

    def test_overnight_window_end_is_exclusive(self):
        assert not is_in_quiet_hours(NEW_YORK, "22:00", "08:00", utc(2025, 1, 16, 13, 0))

    def test_same_day_window(self):
        assert is_in_quiet_hours("UTC", "09:00", "17:00", utc(2025, 1, 15, 9, 0))
        assert not is_in_quiet_hours("UTC", "09:00", "17:00", utc(2025, 1, 15, 17, 0))

    def test_equal_bounds_never_quiet(self):
        """start == end is an empty window at every minute of the day."""
        start = utc(2025, 1, 15, 0, 0)
        for minute in range(0, 24 * 60, 15):
            assert not is_in_quiet_hours("UTC", "22:00", "22:00", start + timedelta(minutes=minute))


class TestResolveTimezone:
    """Tests for resolve_timezone."""

    def test_valid_zone_returned(self):
        assert resolve_timezone("Europe/London") == "Europe/London"

    @pytest.mark.parametrize("raw", [None, "", "Not/AZone", "../etc/passwd"])
    def test_invalid_zone_falls_back(self, raw):
        assert resolve_timezone(raw) == NEW_YORK

    def test_custom_fallback(self):
        assert resolve_timezone("garbage", fallback="UTC") == "UTC"


class TestHourMatchingAndBounds:
    """Tests for local hour matching and day bounds."""

    def test_local_hour_match(self):
        instant = utc(2025, 1, 15, 23, 10)  # 18:10 in New York
        assert is_local_hour_match(NEW_YORK, "18:00", instant)
        assert not is_local_hour_match(NEW_YORK, "19:00", instant)

    def test_local_day_bounds(self):
        start, end = local_day_bounds_utc(NEW_YORK, utc(2025, 1, 15, 17))
        assert start == datetime(2025, 1, 15, 5, 0)
        assert end == datetime(2025, 1, 16, 5, 0)

    def test_next_quiet_end_same_night(self):
        """At 23:30 local the window ends at 08:00 the next local morning."""
        end = next_quiet_hours_end(NEW_YORK, "08:00", utc(2025, 1, 16, 4, 30))
        assert end == utc(2025, 1, 16, 13, 0)

    def test_next_quiet_end_after_midnight(self):
        """At 02:00 local the window ends at 08:00 the same local day."""
        end = next_quiet_hours_end(NEW_YORK, "08:00", utc(2025, 1, 16, 7, 0))
        assert end == utc(2025, 1, 16, 13, 0)
