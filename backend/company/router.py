"""Company router — leave policy and calendar (bank holidays, day overrides).

Reads are open to any employee of the company. Calendar writes need
``calendar:configure`` and policy writes need ``policy:configure`` (HR /
system admins).
"""


from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from backend.auth.dependencies import get_current_user, require_permission
from backend.company.schemas import (
    BankHolidayCreate,
    BankHolidayOut,
    DayOverrideOut,
    DayOverrideUpsert,
    LeavePolicyOut,
    LeavePolicyUpdate,
)
from backend.company.service import CompanyService
from backend.core_hr.models import Employee
from backend.database import get_db

router = APIRouter(prefix="", tags=["company"])


# ── GET /leave-policy ───────────────────────────────────────────────

@router.get("/leave-policy", response_model=LeavePolicyOut)
async def get_leave_policy(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await CompanyService.describe_leave_policy(db, employee.company_id)


# ── PUT /leave-policy ───────────────────────────────────────────────

@router.put("/leave-policy", response_model=LeavePolicyOut)
async def update_leave_policy(
    body: LeavePolicyUpdate,
    employee: Employee = Depends(require_permission("policy:configure")),
    db: AsyncSession = Depends(get_db),
):
    """Replace caps, accrual settings and the sandwich rule for the company."""
    return await CompanyService.update_leave_policy(
        db, employee.company_id, body, actor_id=employee.id,
    )


# ── GET /bank-holidays ──────────────────────────────────────────────

@router.get("/bank-holidays", response_model=list[BankHolidayOut])
async def list_bank_holidays(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await CompanyService.list_bank_holidays(db, employee.company_id, year)


# ── POST /bank-holidays ─────────────────────────────────────────────

@router.post("/bank-holidays", response_model=BankHolidayOut, status_code=201)
async def add_bank_holiday(
    body: BankHolidayCreate,
    employee: Employee = Depends(require_permission("calendar:configure")),
    db: AsyncSession = Depends(get_db),
):
    """Add a bank holiday. A second holiday on the same date is a conflict."""
    return await CompanyService.add_bank_holiday(
        db, employee.company_id, body, actor_id=employee.id,
    )


# ── DELETE /bank-holidays/{date} ───────────────────────────────────

@router.delete("/bank-holidays/{day}", status_code=204)
async def delete_bank_holiday(
    day: date,
    employee: Employee = Depends(require_permission("calendar:configure")),
    db: AsyncSession = Depends(get_db),
):
    await CompanyService.delete_bank_holiday(
        db, employee.company_id, day, actor_id=employee.id,
    )
    return Response(status_code=204)


# ── GET /day-overrides ──────────────────────────────────────────────

@router.get("/day-overrides", response_model=list[DayOverrideOut])
async def list_day_overrides(
    month: str = Query(..., pattern=r"^\d{4}-(0[1-9]|1[0-2])$", description="YYYY-MM"),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await CompanyService.list_day_overrides(db, employee.company_id, month)


# ── PUT /day-overrides ──────────────────────────────────────────────

@router.put("/day-overrides", response_model=DayOverrideOut)
async def upsert_day_override(
    body: DayOverrideUpsert,
    employee: Employee = Depends(require_permission("calendar:configure")),
    db: AsyncSession = Depends(get_db),
):
    """Set the override for one day, replacing any existing one."""
    return await CompanyService.upsert_day_override(
        db, employee.company_id, body, actor_id=employee.id,
    )


# ── DELETE /day-overrides/{date} ────────────────────────────────────

@router.delete("/day-overrides/{day}", status_code=204)
async def delete_day_override(
    day: date,
    employee: Employee = Depends(require_permission("calendar:configure")),
    db: AsyncSession = Depends(get_db),
):
    await CompanyService.delete_day_override(
        db, employee.company_id, day, actor_id=employee.id,
    )
    return Response(status_code=204)
