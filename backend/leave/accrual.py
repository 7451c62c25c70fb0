"""Monthly accrual gate for the shared leave pool.

The pool is credited ``rate_per_month`` for every month between the
employee's accrual marker and the target month, limited so that pool plus
pooled usage never exceeds the policy's annual total. The marker then moves
to the target month, so running the gate twice for one month is a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backend.common.constants import POOLED_KINDS, YEAR_MONTH_FORMAT, ZERO, LeaveKind
from backend.core_hr.models import Employee
from backend.leave.calendar import DateLike, to_calendar_day
from backend.leave.ledger import BalanceLedger
from backend.leave.policy import LeavePolicy

logger = logging.getLogger(__name__)


def year_month_key(value: DateLike) -> str:
    return to_calendar_day(value).strftime(YEAR_MONTH_FORMAT)


def months_between(start_key: str, end_key: str) -> int:
    """Whole months from ``start_key`` to ``end_key`` (may be negative)."""
    sy, sm = (int(part) for part in start_key.split("-"))
    ey, em = (int(part) for part in end_key.split("-"))
    return (ey - sy) * 12 + (em - sm)


@dataclass(frozen=True)
class AccrualDecision:
    amount: Decimal
    months: int
    year_month: str


def compute_accrual(
    policy: LeavePolicy,
    usage: Mapping[LeaveKind, Decimal],
    pool: Decimal,
    last_year_month: str,
    target_year_month: str,
) -> Optional[AccrualDecision]:
    """Decide the credit for catching up to ``target_year_month``.

    Returns ``None`` when nothing should change: the policy does not accrue,
    or the marker is already at or past the target month.
    """
    if not policy.accrues:
        return None
    months = months_between(last_year_month, target_year_month)
    if months <= 0:
        return None

    pooled_used = sum((Decimal(usage.get(k, ZERO)) for k in POOLED_KINDS), ZERO)
    cap_left = max(ZERO, policy.total_annual - pooled_used - Decimal(pool))
    amount = max(ZERO, min(policy.rate_per_month * months, cap_left))
    return AccrualDecision(amount=amount, months=months, year_month=target_year_month)


class AccrualScheduler:
    """Runs the monthly gate against a persisted employee ledger."""

    @staticmethod
    async def ensure_accrued(
        db: AsyncSession,
        employee: Employee,
        policy: LeavePolicy,
        as_of: DateLike,
    ) -> Optional[AccrualDecision]:
        target = year_month_key(as_of)
        last = employee.last_accrued_year_month or year_month_key(
            employee.created_at or as_of
        )

        decision = compute_accrual(
            policy,
            employee.usage(),
            employee.total_leave_available,
            last,
            target,
        )
        if decision is None:
            return None

        await BalanceLedger.credit_accrual(
            db, employee, decision.amount, decision.year_month,
        )
        logger.info(
            "Accrued %s day(s) over %d month(s) for employee %s up to %s",
            decision.amount, decision.months, employee.id, decision.year_month,
        )
        return decision
