"""Company service layer — leave policy and the company calendar.

Business logic:
  - Leave policy lookup and update (caps, pool accrual, sandwich settings)
  - Bank holidays (one per company and date): add, list, delete
  - Per-day overrides: working / holiday / half_day, upserted by date
  - Calendar resolution for a leave range, consumed by the leave engine
"""

from __future__ import annotations

import logging
import uuid
from calendar import monthrange
from datetime import date, datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.common.audit import create_audit_entry
from backend.common.constants import LeaveKind
from backend.common.exceptions import (
    ConflictError,
    NotFoundException,
    ValidationException,
)
from backend.company.models import BankHoliday, Company, CompanyDayOverride
from backend.company.schemas import (
    BankHolidayCreate,
    DayOverrideUpsert,
    LeavePolicyOut,
    LeavePolicyUpdate,
)
from backend.config import settings
from backend.core_hr.models import Employee
from backend.leave.calendar import ResolvedCalendar, resolve_calendar
from backend.leave.chargeable import normalize_sandwich_min_days
from backend.leave.ledger import BalanceLedger
from backend.leave.policy import LeavePolicy

logger = logging.getLogger(__name__)


def month_bounds(year_month: str) -> tuple[date, date]:
    """First and last calendar day of a ``YYYY-MM`` month."""
    try:
        year, month = (int(part) for part in year_month.split("-"))
        first = date(year, month, 1)
    except ValueError:
        raise ValidationException(
            errors={"month": ["month must be formatted as YYYY-MM."]}
        )
    return first, date(year, month, monthrange(year, month)[1])


# ═════════════════════════════════════════════════════════════════════
# CompanyService
# ═════════════════════════════════════════════════════════════════════


class CompanyService:
    """Async company policy and calendar operations."""

    # ── Policy ──────────────────────────────────────────────────────

    @staticmethod
    async def get_company(db: AsyncSession, company_id: uuid.UUID) -> Company:
        company = await db.get(Company, company_id)
        if company is None:
            raise NotFoundException("Company", str(company_id))
        return company

    @staticmethod
    async def get_leave_policy(db: AsyncSession, company_id: uuid.UUID) -> LeavePolicy:
        company = await CompanyService.get_company(db, company_id)
        return LeavePolicy.from_company(company, settings.DEFAULT_SANDWICH_MIN_DAYS)

    @staticmethod
    async def describe_leave_policy(
        db: AsyncSession, company_id: uuid.UUID,
    ) -> LeavePolicyOut:
        policy = await CompanyService.get_leave_policy(db, company_id)
        return LeavePolicyOut(
            company_id=company_id,
            cap_paid=policy.caps[LeaveKind.paid],
            cap_casual=policy.caps[LeaveKind.casual],
            cap_sick=policy.caps[LeaveKind.sick],
            total_annual=policy.total_annual,
            rate_per_month=policy.rate_per_month,
            sandwich_enabled=policy.sandwich.enabled,
            sandwich_min_days=policy.sandwich.min_days,
        )

    @staticmethod
    async def update_leave_policy(
        db: AsyncSession,
        company_id: uuid.UUID,
        data: LeavePolicyUpdate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeavePolicyOut:
        """Replace the policy, then recompute display balances for active employees.

        Pool and usage are left alone; accrual under the new rate happens on
        the next approval or ledger read.
        """
        caps_total = data.cap_paid + data.cap_casual + data.cap_sick
        if caps_total > data.total_annual:
            raise ValidationException(
                errors={"total_annual": ["Type caps cannot exceed the annual total."]}
            )

        company = await CompanyService.get_company(db, company_id)
        before = await CompanyService.describe_leave_policy(db, company_id)

        company.cap_paid = data.cap_paid
        company.cap_casual = data.cap_casual
        company.cap_sick = data.cap_sick
        company.total_annual = data.total_annual
        company.rate_per_month = data.rate_per_month
        company.sandwich_enabled = data.sandwich_enabled
        company.sandwich_min_days = normalize_sandwich_min_days(
            data.sandwich_min_days, settings.DEFAULT_SANDWICH_MIN_DAYS,
        )
        company.updated_at = datetime.now(timezone.utc)
        await db.flush()

        policy = LeavePolicy.from_company(company, settings.DEFAULT_SANDWICH_MIN_DAYS)
        result = await db.execute(
            select(Employee)
            .where(Employee.company_id == company_id, Employee.is_active.is_(True))
            .execution_options(populate_existing=True)
        )
        employees = result.scalars().all()
        for employee in employees:
            await BalanceLedger.with_retries(
                db,
                employee,
                lambda emp: BalanceLedger.refresh_balances(db, emp, policy.caps),
            )

        after = await CompanyService.describe_leave_policy(db, company_id)
        await create_audit_entry(
            db,
            action="update",
            entity_type="leave_policy",
            entity_id=company_id,
            actor_id=actor_id,
            old_values=before.model_dump(mode="json"),
            new_values=after.model_dump(mode="json"),
        )
        logger.info(
            "Leave policy updated for company %s; balances refreshed for %d employee(s)",
            company_id, len(employees),
        )
        return after

    # ── Calendar resolution ─────────────────────────────────────────

    @staticmethod
    async def load_calendar(
        db: AsyncSession,
        company_id: uuid.UUID,
        start: date,
        end: date,
    ) -> ResolvedCalendar:
        """Resolve ``[start, end]`` against the company's holidays and overrides."""
        holidays = await db.execute(
            select(BankHoliday.date).where(
                BankHoliday.company_id == company_id,
                BankHoliday.date >= start,
                BankHoliday.date <= end,
            )
        )
        overrides = await db.execute(
            select(CompanyDayOverride.date, CompanyDayOverride.kind).where(
                CompanyDayOverride.company_id == company_id,
                CompanyDayOverride.date >= start,
                CompanyDayOverride.date <= end,
            )
        )
        return resolve_calendar(
            start,
            end,
            holidays.scalars().all(),
            {row.date: row.kind for row in overrides.all()},
        )

    # ── Bank holidays ───────────────────────────────────────────────

    @staticmethod
    async def add_bank_holiday(
        db: AsyncSession,
        company_id: uuid.UUID,
        data: BankHolidayCreate,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> BankHoliday:
        existing = await db.execute(
            select(BankHoliday.id).where(
                BankHoliday.company_id == company_id,
                BankHoliday.date == data.date,
            )
        )
        if existing.scalars().first() is not None:
            raise ConflictError("date", data.date.isoformat())

        holiday = BankHoliday(company_id=company_id, date=data.date, name=data.name)
        try:
            async with db.begin_nested():
                db.add(holiday)
        except IntegrityError:
            raise ConflictError("date", data.date.isoformat())

        await create_audit_entry(
            db,
            action="create",
            entity_type="bank_holiday",
            entity_id=holiday.id,
            actor_id=actor_id,
            new_values=data.model_dump(mode="json"),
        )
        logger.info("Bank holiday %s added for company %s", data.date, company_id)
        return holiday

    @staticmethod
    async def list_bank_holidays(
        db: AsyncSession,
        company_id: uuid.UUID,
        year: Optional[int] = None,
    ) -> Sequence[BankHoliday]:
        query = select(BankHoliday).where(BankHoliday.company_id == company_id)
        if year is not None:
            query = query.where(
                BankHoliday.date >= date(year, 1, 1),
                BankHoliday.date <= date(year, 12, 31),
            )
        result = await db.execute(query.order_by(BankHoliday.date))
        return result.scalars().all()

    @staticmethod
    async def delete_bank_holiday(
        db: AsyncSession,
        company_id: uuid.UUID,
        day: date,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> None:
        result = await db.execute(
            select(BankHoliday).where(
                BankHoliday.company_id == company_id,
                BankHoliday.date == day,
            )
        )
        holiday = result.scalars().first()
        if holiday is None:
            raise NotFoundException("Bank holiday", day.isoformat())

        await create_audit_entry(
            db,
            action="delete",
            entity_type="bank_holiday",
            entity_id=holiday.id,
            actor_id=actor_id,
            old_values={"date": day.isoformat(), "name": holiday.name},
        )
        await db.delete(holiday)
        await db.flush()

    # ── Day overrides ───────────────────────────────────────────────

    @staticmethod
    async def upsert_day_override(
        db: AsyncSession,
        company_id: uuid.UUID,
        data: DayOverrideUpsert,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> CompanyDayOverride:
        """Create or replace the override for ``(company, date)``."""
        result = await db.execute(
            select(CompanyDayOverride).where(
                CompanyDayOverride.company_id == company_id,
                CompanyDayOverride.date == data.date,
            )
        )
        override = result.scalars().first()
        old_values = None

        if override is None:
            override = CompanyDayOverride(company_id=company_id, date=data.date)
            db.add(override)
        else:
            old_values = {"kind": override.kind.value, "note": override.note}

        override.kind = data.kind
        override.note = data.note
        override.updated_by = actor_id
        override.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="upsert",
            entity_type="company_day_override",
            entity_id=override.id,
            actor_id=actor_id,
            old_values=old_values,
            new_values=data.model_dump(mode="json"),
        )
        return override

    @staticmethod
    async def delete_day_override(
        db: AsyncSession,
        company_id: uuid.UUID,
        day: date,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> None:
        result = await db.execute(
            select(CompanyDayOverride).where(
                CompanyDayOverride.company_id == company_id,
                CompanyDayOverride.date == day,
            )
        )
        override = result.scalars().first()
        if override is None:
            raise NotFoundException("Day override", day.isoformat())

        await create_audit_entry(
            db,
            action="delete",
            entity_type="company_day_override",
            entity_id=override.id,
            actor_id=actor_id,
            old_values={
                "date": day.isoformat(),
                "kind": override.kind.value,
                "note": override.note,
            },
        )
        await db.delete(override)
        await db.flush()

    @staticmethod
    async def list_day_overrides(
        db: AsyncSession,
        company_id: uuid.UUID,
        year_month: str,
    ) -> Sequence[CompanyDayOverride]:
        first, last = month_bounds(year_month)
        result = await db.execute(
            select(CompanyDayOverride)
            .where(
                CompanyDayOverride.company_id == company_id,
                CompanyDayOverride.date >= first,
                CompanyDayOverride.date <= last,
            )
            .order_by(CompanyDayOverride.date)
        )
        return result.scalars().all()
