"""Company calendar resolution for a leave date range.

Merges the base calendar (weekends + bank holidays) with per-day company
overrides. Override precedence beats the base calendar:

  - ``working``  → day is not excluded (cancels weekend / holiday status)
  - ``holiday``  → day is excluded
  - ``half_day`` → day is not excluded and counts as a half day

Everything here is pure: no session, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Iterator, Mapping, Union

from backend.common.constants import WEEKEND_DAYS, DayOverrideKind

DateLike = Union[date, datetime]


def to_calendar_day(value: DateLike) -> date:
    """Normalise a date or timestamp to a calendar day.

    Aware datetimes are converted to UTC first so a late-evening local
    timestamp never lands on the wrong day; naive datetimes are truncated.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Expected date or datetime, got {type(value).__name__}")


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every calendar day in the closed range ``[start, end]``."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


@dataclass(frozen=True)
class ResolvedDay:
    day: date
    excluded: bool
    is_half_day: bool


@dataclass(frozen=True)
class ResolvedCalendar:
    """Per-day resolution of ``[start, end]`` plus the derived day sets."""

    start: date
    end: date
    days: tuple[ResolvedDay, ...]
    forced_working_days: frozenset[date]

    @property
    def range_length(self) -> int:
        return len(self.days)

    @property
    def excluded_days(self) -> frozenset[date]:
        return frozenset(d.day for d in self.days if d.excluded)

    @property
    def half_days(self) -> frozenset[date]:
        return frozenset(d.day for d in self.days if d.is_half_day)

    @property
    def has_excluded_day(self) -> bool:
        return any(d.excluded for d in self.days)


def resolve_calendar(
    start: DateLike,
    end: DateLike,
    bank_holidays: Iterable[DateLike],
    overrides: Mapping[DateLike, DayOverrideKind],
    *,
    weekend_days: frozenset[int] = WEEKEND_DAYS,
) -> ResolvedCalendar:
    """Resolve each day in ``[start, end]`` to ``(excluded, is_half_day)``.

    Raises:
        ValueError: if ``end`` is before ``start``.
    """
    start_day = to_calendar_day(start)
    end_day = to_calendar_day(end)
    if end_day < start_day:
        raise ValueError(
            f"end ({end_day.isoformat()}) is before start ({start_day.isoformat()})"
        )

    holidays = {to_calendar_day(h) for h in bank_holidays}
    kinds = {to_calendar_day(k): DayOverrideKind(v) for k, v in overrides.items()}

    days: list[ResolvedDay] = []
    forced_working: set[date] = set()
    for day in iter_days(start_day, end_day):
        excluded = day.weekday() in weekend_days or day in holidays
        is_half_day = False

        kind = kinds.get(day)
        if kind is DayOverrideKind.working:
            excluded = False
            forced_working.add(day)
        elif kind is DayOverrideKind.holiday:
            excluded = True
        elif kind is DayOverrideKind.half_day:
            excluded = False
            is_half_day = True

        days.append(ResolvedDay(day=day, excluded=excluded, is_half_day=is_half_day))

    return ResolvedCalendar(
        start=start_day,
        end=end_day,
        days=tuple(days),
        forced_working_days=frozenset(forced_working),
    )
