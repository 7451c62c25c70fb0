"""Calendar resolution tests — weekends, bank holidays, per-day overrides."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from backend.common.constants import DayOverrideKind
from backend.leave.calendar import iter_days, resolve_calendar, to_calendar_day

MON = date(2026, 3, 2)
FRI = date(2026, 3, 6)
SAT = date(2026, 3, 7)
SUN = date(2026, 3, 8)
NEXT_MON = date(2026, 3, 9)


class TestToCalendarDay:

    def test_date_passes_through(self):
        assert to_calendar_day(MON) == MON

    def test_aware_datetime_is_converted_to_utc_first(self):
        ist = timezone(timedelta(hours=5, minutes=30))
        # 02:00 on the 3rd in IST is still the 2nd in UTC
        assert to_calendar_day(datetime(2026, 3, 3, 2, 0, tzinfo=ist)) == MON

    def test_naive_datetime_is_truncated(self):
        assert to_calendar_day(datetime(2026, 3, 2, 23, 59)) == MON

    def test_rejects_other_types(self):
        with pytest.raises(TypeError):
            to_calendar_day("2026-03-02")  # type: ignore[arg-type]


class TestResolveCalendar:

    def test_weekends_are_excluded(self):
        cal = resolve_calendar(MON, SUN, [], {})
        assert cal.range_length == 7
        assert cal.excluded_days == frozenset({SAT, SUN})
        assert cal.has_excluded_day

    def test_bank_holiday_is_excluded(self):
        wed = date(2026, 3, 4)
        cal = resolve_calendar(MON, FRI, [wed], {})
        assert cal.excluded_days == frozenset({wed})

    def test_working_override_cancels_weekend(self):
        cal = resolve_calendar(FRI, NEXT_MON, [], {SAT: DayOverrideKind.working})
        assert cal.excluded_days == frozenset({SUN})
        assert cal.forced_working_days == frozenset({SAT})

    def test_working_override_cancels_bank_holiday(self):
        cal = resolve_calendar(MON, MON, [MON], {MON: DayOverrideKind.working})
        assert not cal.has_excluded_day

    def test_holiday_override_excludes_weekday(self):
        cal = resolve_calendar(MON, FRI, [], {FRI: DayOverrideKind.holiday})
        assert cal.excluded_days == frozenset({FRI})
        assert cal.forced_working_days == frozenset()

    def test_half_day_override_on_weekend_becomes_half_working(self):
        cal = resolve_calendar(SAT, SAT, [], {SAT: DayOverrideKind.half_day})
        (day,) = cal.days
        assert day.excluded is False
        assert day.is_half_day is True
        assert cal.half_days == frozenset({SAT})

    def test_overrides_outside_range_are_ignored(self):
        cal = resolve_calendar(MON, FRI, [SAT], {SUN: DayOverrideKind.holiday})
        assert not cal.has_excluded_day

    def test_single_day_range(self):
        cal = resolve_calendar(MON, MON, [], {})
        assert cal.range_length == 1
        assert cal.start == cal.end == MON

    def test_end_before_start_raises(self):
        with pytest.raises(ValueError):
            resolve_calendar(FRI, MON, [], {})

    def test_string_override_kinds_are_accepted(self):
        cal = resolve_calendar(MON, MON, [], {MON: "holiday"})  # type: ignore[dict-item]
        assert cal.excluded_days == frozenset({MON})

    def test_resolution_is_repeatable(self):
        args = (MON, NEXT_MON, [date(2026, 3, 4)], {SAT: DayOverrideKind.half_day})
        assert resolve_calendar(*args) == resolve_calendar(*args)


def test_iter_days_is_inclusive():
    assert list(iter_days(FRI, NEXT_MON)) == [FRI, SAT, SUN, NEXT_MON]
