"""Balance ledger — the only writer of the employee leave-ledger columns.

Every mutation is one UPDATE on the employee row, guarded by
``ledger_version`` (compare-and-swap). A writer holding a stale snapshot
matches zero rows and gets ``LedgerConflictError``; callers re-read and
recompute. A vanished employee row raises ``NotFoundException``.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Awaitable, Callable, Mapping, TypeVar

import sqlalchemy as sa
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.common.constants import POOLED_KINDS, ZERO, LeaveKind
from backend.common.exceptions import LedgerConflictError, NotFoundException
from backend.config import settings
from backend.core_hr.models import Employee
from backend.leave.allocation import Allocation

logger = logging.getLogger(__name__)

T = TypeVar("T")

_USED_COLUMNS = {
    LeaveKind.paid: Employee.used_paid,
    LeaveKind.casual: Employee.used_casual,
    LeaveKind.sick: Employee.used_sick,
    LeaveKind.unpaid: Employee.used_unpaid,
}

_BALANCE_FIELDS = {
    LeaveKind.paid: "balance_paid",
    LeaveKind.casual: "balance_casual",
    LeaveKind.sick: "balance_sick",
    LeaveKind.unpaid: "balance_unpaid",
}


def derived_balances(
    caps: Mapping[LeaveKind, Decimal],
    usage: Mapping[LeaveKind, Decimal],
) -> dict[LeaveKind, Decimal]:
    """Display balances: ``max(0, cap - used)``; unpaid shows its usage."""
    out = {
        kind: max(ZERO, Decimal(caps.get(kind, ZERO)) - Decimal(usage.get(kind, ZERO)))
        for kind in POOLED_KINDS
    }
    out[LeaveKind.unpaid] = Decimal(usage.get(LeaveKind.unpaid, ZERO))
    return out


def _clamped_at_zero(expr: Any) -> Any:
    return sa.case((expr > 0, expr), else_=sa.literal(ZERO, sa.Numeric(8, 2)))


class BalanceLedger:
    """Atomic, version-guarded mutations of an employee's leave ledger."""

    @staticmethod
    async def _execute_guarded(
        db: AsyncSession,
        employee: Employee,
        values: dict[str, Any],
    ) -> Employee:
        expected_version = employee.ledger_version
        values = {
            **values,
            "ledger_version": Employee.ledger_version + 1,
            "updated_at": sa.func.now(),
        }
        stmt = (
            update(Employee)
            .where(
                Employee.id == employee.id,
                Employee.ledger_version == expected_version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)

        if result.rowcount == 0:
            still_there = await db.scalar(
                select(Employee.id).where(Employee.id == employee.id)
            )
            if still_there is None:
                logger.error("Ledger update matched no employee row: %s", employee.id)
                raise NotFoundException("Employee", str(employee.id))
            logger.info(
                "Ledger version moved for employee %s (expected %s)",
                employee.id, expected_version,
            )
            raise LedgerConflictError(employee.id)

        await db.refresh(employee)
        return employee

    @staticmethod
    async def apply_allocation(
        db: AsyncSession,
        employee: Employee,
        allocation: Allocation,
        caps: Mapping[LeaveKind, Decimal],
    ) -> Employee:
        """Debit the pool, bump usage per bucket, recompute display balances.

        Unpaid days never touch the pool.
        """
        values: dict[str, Any] = {
            "total_leave_available": Employee.total_leave_available - allocation.pooled,
        }
        for kind, column in _USED_COLUMNS.items():
            used_after = column + allocation.get(kind)
            values[column.key] = used_after
            if kind is LeaveKind.unpaid:
                values[_BALANCE_FIELDS[kind]] = used_after
            else:
                cap = Decimal(caps.get(kind, ZERO))
                values[_BALANCE_FIELDS[kind]] = _clamped_at_zero(cap - used_after)

        logger.debug(
            "Applying allocation %s to employee %s (pool before=%s)",
            allocation.as_dict(), employee.id, employee.total_leave_available,
        )
        return await BalanceLedger._execute_guarded(db, employee, values)

    @staticmethod
    async def credit_accrual(
        db: AsyncSession,
        employee: Employee,
        amount: Decimal,
        year_month: str,
    ) -> Employee:
        """Credit the pool and advance the accrual marker in one update."""
        values = {
            "total_leave_available": Employee.total_leave_available + amount,
            "last_accrued_year_month": year_month,
        }
        return await BalanceLedger._execute_guarded(db, employee, values)

    @staticmethod
    async def refresh_balances(
        db: AsyncSession,
        employee: Employee,
        caps: Mapping[LeaveKind, Decimal],
    ) -> Employee:
        """Recompute the display balances from usage and the current caps."""
        derived = derived_balances(caps, employee.usage())
        if derived == employee.balances():
            return employee
        values = {_BALANCE_FIELDS[kind]: value for kind, value in derived.items()}
        return await BalanceLedger._execute_guarded(db, employee, values)

    @staticmethod
    async def with_retries(
        db: AsyncSession,
        employee: Employee,
        mutate: Callable[[Employee], Awaitable[T]],
    ) -> T:
        """Run ``mutate`` and re-run it against a fresh read on a lost CAS race."""
        attempt = 0
        while True:
            try:
                return await mutate(employee)
            except LedgerConflictError:
                attempt += 1
                if attempt > settings.LEDGER_MAX_RETRIES:
                    logger.warning(
                        "Giving up on ledger update for employee %s after %d retries",
                        employee.id, settings.LEDGER_MAX_RETRIES,
                    )
                    raise
                logger.info(
                    "Ledger conflict for employee %s, retry %d/%d",
                    employee.id, attempt, settings.LEDGER_MAX_RETRIES,
                )
                await db.refresh(employee)
