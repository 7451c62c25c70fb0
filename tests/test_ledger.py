"""Balance ledger tests — atomic, version-guarded ledger mutations."""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.common.constants import LeaveKind
from backend.common.exceptions import LedgerConflictError, NotFoundException
from backend.core_hr.models import Employee
from backend.leave.allocation import Allocation
from backend.leave.ledger import BalanceLedger, derived_balances
from tests.conftest import seed_company, seed_employee

D = Decimal

CAPS = {LeaveKind.paid: D("12"), LeaveKind.casual: D("6"), LeaveKind.sick: D("6")}


async def _bump_version(db: AsyncSession, employee_id: uuid.UUID) -> None:
    """Simulate another writer committing a ledger change."""
    await db.execute(
        update(Employee)
        .where(Employee.id == employee_id)
        .values(ledger_version=Employee.ledger_version + 1)
        .execution_options(synchronize_session=False)
    )


class TestDerivedBalances:

    def test_clamps_at_zero_and_mirrors_unpaid(self):
        usage = {
            LeaveKind.paid: D("14"), LeaveKind.casual: D("2"),
            LeaveKind.sick: D("0"), LeaveKind.unpaid: D("3"),
        }
        assert derived_balances(CAPS, usage) == {
            LeaveKind.paid: D("0"),
            LeaveKind.casual: D("4"),
            LeaveKind.sick: D("6"),
            LeaveKind.unpaid: D("3"),
        }


class TestApplyAllocation:

    async def test_debits_pool_and_updates_usage_and_balances(self, db: AsyncSession):
        company = await seed_company(db)
        emp = await seed_employee(
            db, company.id, pool=D("10"), used={"paid": D("3")},
        )

        await BalanceLedger.apply_allocation(
            db, emp, Allocation(paid=D("4"), sick=D("1"), unpaid=D("2.5")), CAPS,
        )

        assert emp.total_leave_available == D("5")
        assert emp.used_paid == D("7")
        assert emp.used_sick == D("1")
        assert emp.used_unpaid == D("2.5")
        assert emp.balance_paid == D("5")
        assert emp.balance_casual == D("6")
        assert emp.balance_sick == D("5")
        assert emp.balance_unpaid == D("2.5")
        assert emp.ledger_version == 1

    async def test_balance_never_negative(self, db: AsyncSession):
        company = await seed_company(db)
        emp = await seed_employee(
            db, company.id, pool=D("10"), used={"casual": D("5")},
        )

        await BalanceLedger.apply_allocation(db, emp, Allocation(casual=D("3")), CAPS)

        assert emp.used_casual == D("8")
        assert emp.balance_casual == D("0")

    async def test_unpaid_only_allocation_keeps_pool(self, db: AsyncSession):
        company = await seed_company(db)
        emp = await seed_employee(db, company.id, pool=D("3"))

        await BalanceLedger.apply_allocation(db, emp, Allocation(unpaid=D("4")), CAPS)

        assert emp.total_leave_available == D("3")
        assert emp.used_unpaid == D("4")

    async def test_stale_version_raises_conflict_and_writes_nothing(self, db: AsyncSession):
        company = await seed_company(db)
        emp = await seed_employee(db, company.id, pool=D("10"))
        await _bump_version(db, emp.id)

        with pytest.raises(LedgerConflictError):
            await BalanceLedger.apply_allocation(db, emp, Allocation(paid=D("2")), CAPS)

        await db.refresh(emp)
        assert emp.total_leave_available == D("10")
        assert emp.used_paid == D("0")
        assert emp.ledger_version == 1

    async def test_vanished_employee_raises_not_found(self, db: AsyncSession):
        ghost = Employee(id=uuid.uuid4(), ledger_version=0)

        with pytest.raises(NotFoundException):
            await BalanceLedger.apply_allocation(db, ghost, Allocation(paid=D("1")), CAPS)


class TestCreditAndRefresh:

    async def test_credit_accrual(self, db: AsyncSession):
        company = await seed_company(db)
        emp = await seed_employee(db, company.id, pool=D("1.5"))

        await BalanceLedger.credit_accrual(db, emp, D("2"), "2026-04")

        assert emp.total_leave_available == D("3.5")
        assert emp.last_accrued_year_month == "2026-04"

    async def test_refresh_balances_follows_caps(self, db: AsyncSession):
        company = await seed_company(db)
        emp = await seed_employee(db, company.id, used={"paid": D("2")})

        await BalanceLedger.refresh_balances(db, emp, CAPS)
        assert emp.balance_paid == D("10")
        assert emp.ledger_version == 1

        # Unchanged balances are not rewritten
        await BalanceLedger.refresh_balances(db, emp, CAPS)
        assert emp.ledger_version == 1


class TestLedgerRetries:

    async def test_retry_recovers_after_refresh(self, db: AsyncSession):
        company = await seed_company(db)
        emp = await seed_employee(db, company.id, pool=D("10"))
        await _bump_version(db, emp.id)

        async def _debit(e: Employee) -> Employee:
            return await BalanceLedger.apply_allocation(db, e, Allocation(paid=D("2")), CAPS)

        result = await BalanceLedger.with_retries(db, emp, _debit)

        assert result.total_leave_available == D("8")
        assert result.ledger_version == 2

    async def test_gives_up_after_configured_retries(self, db: AsyncSession, monkeypatch):
        from backend.config import settings

        monkeypatch.setattr(settings, "LEDGER_MAX_RETRIES", 2)
        company = await seed_company(db)
        emp = await seed_employee(db, company.id)
        calls = []

        async def _always_conflict(e: Employee) -> None:
            calls.append(1)
            raise LedgerConflictError(e.id)

        with pytest.raises(LedgerConflictError):
            await BalanceLedger.with_retries(db, emp, _always_conflict)
        assert len(calls) == 3
