"""Chargeable-day calculation with the sandwich rule."""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from backend.common.constants import FULL_DAY, HALF_DAY, ZERO
from backend.leave.calendar import ResolvedCalendar, ResolvedDay


def normalize_sandwich_min_days(value: Any, fallback: int) -> int:
    """Coerce a stored ``min_days`` to an int ≥ 1.

    Missing, non-numeric or < 1 values fall back to ``fallback``; fractional
    values are floored.
    """
    try:
        raw = float(value)
    except (TypeError, ValueError):
        raw = math.nan
    if not math.isfinite(raw) or raw < 1:
        return max(1, int(fallback))
    return max(1, math.floor(raw))


@dataclass(frozen=True)
class SandwichPolicy:
    enabled: bool = False
    min_days: int = 5

    @classmethod
    def from_settings(
        cls, enabled: bool, min_days: Optional[Any], default_min_days: int,
    ) -> SandwichPolicy:
        return cls(
            enabled=bool(enabled),
            min_days=normalize_sandwich_min_days(min_days, default_min_days),
        )

    def applies_to(self, calendar: ResolvedCalendar) -> bool:
        """Sandwich kicks in for long ranges that touch an excluded day."""
        return (
            self.enabled
            and calendar.range_length > self.min_days
            and calendar.has_excluded_day
        )


def day_weight(day: ResolvedDay, *, charge_excluded: bool = False) -> Decimal:
    if day.excluded and not charge_excluded:
        return ZERO
    return HALF_DAY if day.is_half_day else FULL_DAY


def calculate_chargeable_days(
    calendar: ResolvedCalendar,
    sandwich: SandwichPolicy,
) -> Decimal:
    """Sum the chargeable units (1 or 0.5 per day) over a resolved range.

    When the sandwich rule applies every day is charged as if it were a
    working day, so weekends / holidays inside a long leave are not free.
    """
    charge_excluded = sandwich.applies_to(calendar)
    total = sum(
        (day_weight(d, charge_excluded=charge_excluded) for d in calendar.days),
        ZERO,
    )
    return max(total, ZERO)
