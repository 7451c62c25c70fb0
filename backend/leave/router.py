"""Leave router — apply, approve/reject, listings, backfill, ledger.

All endpoints require authentication. Approve and reject are open to any
authenticated employee; the service allows only the assigned approver or an
admin of the same company.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backend.auth.dependencies import get_current_user, require_permission, require_role
from backend.common.constants import LeaveStatus, UserRole
from backend.common.rate_limit import BACKFILL_RATE_LIMIT, limiter
from backend.core_hr.models import Employee
from backend.database import get_db
from backend.leave.schemas import (
    BackfillRequest,
    BackfillResult,
    LeaveApprovalOut,
    LeaveApproveRequest,
    LeaveRejectRequest,
    LeaveRequestCreate,
    LeaveRequestOut,
    LedgerSnapshot,
    TeamLeaveOut,
)
from backend.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])


# ── POST /apply ─────────────────────────────────────────────────────

@router.post("/apply", response_model=LeaveRequestOut, status_code=201)
async def apply_leave(
    body: LeaveRequestCreate,
    employee: Employee = Depends(require_permission("leave:request")),
    db: AsyncSession = Depends(get_db),
):
    """Apply for leave. The request goes to the reporting manager."""
    return await LeaveService.apply_leave(db, employee.id, body)


# ── PUT /{id}/approve ───────────────────────────────────────────────

@router.put("/{request_id}/approve", response_model=LeaveApprovalOut)
async def approve_leave(
    request_id: uuid.UUID,
    body: LeaveApproveRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Approve a pending leave request and charge the employee's ledger."""
    return await LeaveService.approve_leave(
        db, request_id, employee.id, message=body.message,
    )


# ── PUT /{id}/reject ────────────────────────────────────────────────

@router.put("/{request_id}/reject", response_model=LeaveRequestOut)
async def reject_leave(
    request_id: uuid.UUID,
    body: LeaveRejectRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Reject a pending leave request."""
    return await LeaveService.reject_leave(
        db, request_id, employee.id, message=body.message,
    )


# ── GET /mine ───────────────────────────────────────────────────────

@router.get("/mine", response_model=list[LeaveRequestOut])
async def my_leaves(
    status: Optional[LeaveStatus] = Query(None),
    employee: Employee = Depends(require_permission("leave:read_own")),
    db: AsyncSession = Depends(get_db),
):
    """The caller's own leave requests, newest first."""
    return await LeaveService.list_my_leaves(db, employee.id, status=status)


# ── GET /assigned ───────────────────────────────────────────────────

@router.get("/assigned", response_model=list[TeamLeaveOut])
async def assigned_leaves(
    status: Optional[LeaveStatus] = Query(None),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Requests routed to the caller for review."""
    return await LeaveService.list_assigned_leaves(db, employee.id, status=status)


# ── GET /on-leave ───────────────────────────────────────────────────

@router.get("/on-leave", response_model=list[TeamLeaveOut])
async def on_leave(
    day: Optional[date] = Query(None, alias="date", description="Defaults to today"),
    employee: Employee = Depends(require_role(UserRole.manager)),
    db: AsyncSession = Depends(get_db),
):
    """Approved leaves in the caller's company covering the given day."""
    return await LeaveService.list_on_leave(db, employee.company_id, on=day)


# ── POST /backfill ──────────────────────────────────────────────────

@router.post("/backfill", response_model=BackfillResult)
@limiter.limit(BACKFILL_RATE_LIMIT)
async def backfill_leaves(
    request: Request,
    body: BackfillRequest,
    employee: Employee = Depends(require_permission("leave:backfill")),
    db: AsyncSession = Depends(get_db),
):
    """Import historical leaves. Rows fail independently."""
    return await LeaveService.backfill_leaves(db, employee.id, body.entries)


# ── GET /ledger ─────────────────────────────────────────────────────

@router.get("/ledger", response_model=LedgerSnapshot)
async def my_ledger(
    employee: Employee = Depends(require_permission("leave:read_own")),
    db: AsyncSession = Depends(get_db),
):
    """Current leave ledger, with accrual caught up to this month."""
    return await LeaveService.get_ledger(db, employee.id)
