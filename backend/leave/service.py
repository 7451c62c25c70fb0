"""Leave service layer — application, approval engine, rejection, backfill, ledger view.

Business logic:
  - Leave application (pending request routed to the reporting manager)
  - Approval: accrual gate → calendar resolution → chargeable days →
    allocation → version-guarded ledger update → pending→approved transition,
    all inside the caller's unit of work
  - Rejection (no ledger mutation)
  - Listings: own requests, requests assigned for review, who is on leave
  - Admin backfill of historical leaves, one savepoint per row
  - Ledger view with accrual caught up to the current month
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, Optional, Sequence

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.common.audit import create_audit_entry
from backend.common.constants import (
    BACKFILL_DEFAULT_REASON,
    TERMINAL_LEAVE_STATUSES,
    LeaveKind,
    LeaveStatus,
)
from backend.common.exceptions import (
    AppException,
    ForbiddenException,
    NotFoundException,
    StateConflictException,
    ValidationException,
)
from backend.company.service import CompanyService
from backend.config import settings
from backend.core_hr.models import Employee
from backend.leave.accrual import AccrualDecision, AccrualScheduler, year_month_key
from backend.leave.allocation import Allocation, AllocationError, allocate
from backend.leave.chargeable import calculate_chargeable_days
from backend.leave.ledger import BalanceLedger
from backend.leave.models import LeaveRequest
from backend.leave.policy import LeavePolicy
from backend.leave.schemas import (
    BackfillResult,
    BackfillRow,
    BackfillRowError,
    BackfillRowResult,
    BucketAmounts,
    LeaveApprovalOut,
    LeaveRequestCreate,
    LeaveRequestOut,
    LedgerSnapshot,
    TeamLeaveOut,
)

logger = logging.getLogger(__name__)


def _decimal_map(values: Mapping[Any, Decimal]) -> dict[str, str]:
    """JSON-safe copy of a bucket → amount mapping for the audit trail."""
    return {getattr(k, "value", k): str(v) for k, v in values.items()}


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: apply, approve, reject, backfill, ledger view."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        result = await db.execute(
            select(Employee)
            .where(Employee.id == employee_id)
            .execution_options(populate_existing=True)
        )
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    @staticmethod
    async def _get_request(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        leave = result.scalars().first()
        if leave is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave

    @staticmethod
    def _parse_kind(
        field: str, value: Any, errors: dict[str, list[str]],
    ) -> Optional[LeaveKind]:
        """Accept a leave type in any letter case (``PAID`` and ``paid`` alike)."""
        if isinstance(value, LeaveKind):
            return value
        try:
            return LeaveKind(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(k.value for k in LeaveKind)
            errors.setdefault(field, []).append(
                f"'{value}' is not a valid leave type. Expected one of: {allowed}."
            )
            return None

    @staticmethod
    def _parse_date(
        field: str, value: Any, errors: dict[str, list[str]],
    ) -> Optional[date]:
        if isinstance(value, date):
            return value
        if not value:
            errors.setdefault(field, []).append("This field is required.")
            return None
        try:
            return date.fromisoformat(str(value))
        except ValueError:
            errors.setdefault(field, []).append(
                f"'{value}' is not a valid date (expected YYYY-MM-DD)."
            )
            return None

    @staticmethod
    def _validate_request_fields(
        leave_type: Any,
        fallback_type: Any,
        start: Any,
        end: Any,
    ) -> tuple[LeaveKind, Optional[LeaveKind], date, date]:
        """Validate type, fallback and range; raise with every problem found."""
        errors: dict[str, list[str]] = {}

        kind: Optional[LeaveKind] = None
        if leave_type in (None, ""):
            errors["leave_type"] = ["This field is required."]
        else:
            kind = LeaveService._parse_kind("leave_type", leave_type, errors)

        fallback: Optional[LeaveKind] = None
        if fallback_type not in (None, ""):
            fallback = LeaveService._parse_kind("fallback_type", fallback_type, errors)
            if fallback is not None and fallback is kind:
                errors.setdefault("fallback_type", []).append(
                    "fallback_type must differ from leave_type."
                )

        start_day = LeaveService._parse_date("start_date", start, errors)
        end_day = LeaveService._parse_date("end_date", end, errors)
        if start_day and end_day:
            if end_day < start_day:
                errors.setdefault("end_date", []).append(
                    "end_date must be on or after start_date."
                )
            elif (end_day - start_day).days + 1 > settings.MAX_LEAVE_SPAN_DAYS:
                errors.setdefault("end_date", []).append(
                    f"A leave may span at most {settings.MAX_LEAVE_SPAN_DAYS} days."
                )

        if errors:
            raise ValidationException(errors=errors)
        return kind, fallback, start_day, end_day  # type: ignore[return-value]

    @staticmethod
    def _ensure_can_review(actor: Employee, leave: LeaveRequest) -> None:
        """Only the assigned approver, or an admin of the same company."""
        if leave.approver_id == actor.id:
            return
        if actor.is_admin and actor.company_id == leave.company_id:
            return
        raise ForbiddenException(
            detail="Only the assigned approver or an admin can review this leave request."
        )

    @staticmethod
    def _ensure_pending(leave: LeaveRequest) -> None:
        if leave.status in TERMINAL_LEAVE_STATUSES:
            raise StateConflictException(
                f"Leave request is already {leave.status.value}."
            )

    @staticmethod
    def _build_ledger_snapshot(employee: Employee) -> LedgerSnapshot:
        return LedgerSnapshot(
            employee_id=employee.id,
            total_leave_available=employee.total_leave_available,
            leave_usage=BucketAmounts(**{k.value: v for k, v in employee.usage().items()}),
            leave_balances=BucketAmounts(
                **{k.value: v for k, v in employee.balances().items()}
            ),
            last_accrued_year_month=employee.last_accrued_year_month,
        )

    @staticmethod
    def _build_request_response(leave: LeaveRequest) -> LeaveRequestOut:
        return LeaveRequestOut.model_validate(leave)

    # ─────────────────────────────────────────────────────────────────
    # Apply
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def apply_leave(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: LeaveRequestCreate,
    ) -> LeaveRequestOut:
        """Create a pending request routed to the employee's reporting manager."""
        employee = await LeaveService._get_employee(db, employee_id)
        kind, fallback, start, end = LeaveService._validate_request_fields(
            data.leave_type, data.fallback_type, data.from_date, data.to_date,
        )

        leave = LeaveRequest(
            employee_id=employee.id,
            company_id=employee.company_id,
            approver_id=employee.reporting_manager_id,
            leave_type=kind,
            fallback_type=fallback,
            start_date=start,
            end_date=end,
            reason=data.reason,
            status=LeaveStatus.pending,
        )
        db.add(leave)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_request",
            entity_id=leave.id,
            actor_id=employee.id,
            new_values=data.model_dump(mode="json"),
        )
        await db.refresh(leave)
        return LeaveService._build_request_response(leave)

    # ─────────────────────────────────────────────────────────────────
    # Approve
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _approve_pending(
        db: AsyncSession,
        leave: LeaveRequest,
        actor_id: uuid.UUID,
        *,
        message: Optional[str] = None,
        require_fallback: bool = False,
    ) -> LeaveApprovalOut:
        """Charge ``leave`` against its owner's ledger and mark it approved.

        Everything is written inside the caller's transaction; any exception
        leaves both the request and the ledger untouched once rolled back.
        """
        employee = await LeaveService._get_employee(db, leave.employee_id)
        policy: LeavePolicy = await CompanyService.get_leave_policy(db, leave.company_id)

        calendar = await CompanyService.load_calendar(
            db, leave.company_id, leave.start_date, leave.end_date,
        )
        chargeable = calculate_chargeable_days(calendar, policy.sandwich)
        month_key = year_month_key(leave.start_date)

        logger.debug(
            "Approving leave %s: %s day(s) chargeable (sandwich=%s), ledger before pool=%s usage=%s",
            leave.id, chargeable, policy.sandwich.applies_to(calendar),
            employee.total_leave_available, _decimal_map(employee.usage()),
        )

        async def _charge(
            emp: Employee,
        ) -> tuple[Optional[AccrualDecision], Allocation, Decimal]:
            accrued = await AccrualScheduler.ensure_accrued(
                db, emp, policy, leave.start_date,
            )
            pool_before = emp.total_leave_available
            allocation = allocate(
                chargeable,
                leave.leave_type,
                leave.fallback_type,
                policy.caps,
                emp.usage(),
                pool_before,
                require_fallback=require_fallback,
            )
            await BalanceLedger.apply_allocation(db, emp, allocation, policy.caps)
            return accrued, allocation, pool_before

        accrued, allocation, pool_before = await BalanceLedger.with_retries(
            db, employee, _charge,
        )

        now = datetime.now(timezone.utc)
        result = await db.execute(
            update(LeaveRequest)
            .where(
                LeaveRequest.id == leave.id,
                LeaveRequest.status == LeaveStatus.pending,
            )
            .values(
                status=LeaveStatus.approved,
                chargeable_days=chargeable,
                alloc_paid=allocation.paid,
                alloc_casual=allocation.casual,
                alloc_sick=allocation.sick,
                alloc_unpaid=allocation.unpaid,
                admin_message=message,
                reviewed_by=actor_id,
                reviewed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise StateConflictException("Leave request is no longer pending.")
        await db.refresh(leave)

        await create_audit_entry(
            db,
            action="approve",
            entity_type="leave_request",
            entity_id=leave.id,
            actor_id=actor_id,
            old_values={
                "status": LeaveStatus.pending.value,
                "total_leave_available": str(pool_before),
            },
            new_values={
                "status": LeaveStatus.approved.value,
                "chargeable_days": str(chargeable),
                "allocations": _decimal_map(allocation.as_dict()),
                "accrued": str(accrued.amount) if accrued else None,
                "total_leave_available": str(employee.total_leave_available),
            },
        )
        logger.info(
            "Leave %s approved: %s chargeable, allocations=%s, pool %s -> %s",
            leave.id, chargeable, allocation.as_dict(),
            pool_before, employee.total_leave_available,
        )

        return LeaveApprovalOut(
            leave=LeaveService._build_request_response(leave),
            ledger=LeaveService._build_ledger_snapshot(employee),
            month_accrued_for=month_key,
            pool_deducted=allocation.pooled,
        )

    @staticmethod
    async def approve_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        *,
        message: Optional[str] = None,
    ) -> LeaveApprovalOut:
        """Approve a pending leave, charging the ledger.

        A missing fallback defaults to unpaid for interactive approvals.
        """
        leave = await LeaveService._get_request(db, request_id)
        actor = await LeaveService._get_employee(db, approver_id)
        LeaveService._ensure_can_review(actor, leave)
        LeaveService._ensure_pending(leave)

        return await LeaveService._approve_pending(
            db, leave, actor.id, message=message,
        )

    # ─────────────────────────────────────────────────────────────────
    # Reject
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def reject_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        *,
        message: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Reject a pending leave. The ledger is not touched."""
        leave = await LeaveService._get_request(db, request_id)
        actor = await LeaveService._get_employee(db, approver_id)
        LeaveService._ensure_can_review(actor, leave)
        LeaveService._ensure_pending(leave)

        now = datetime.now(timezone.utc)
        result = await db.execute(
            update(LeaveRequest)
            .where(
                LeaveRequest.id == leave.id,
                LeaveRequest.status == LeaveStatus.pending,
            )
            .values(
                status=LeaveStatus.rejected,
                admin_message=message,
                reviewed_by=actor.id,
                reviewed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise StateConflictException("Leave request is no longer pending.")
        await db.refresh(leave)

        await create_audit_entry(
            db,
            action="reject",
            entity_type="leave_request",
            entity_id=leave.id,
            actor_id=actor.id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.rejected.value, "message": message},
        )
        logger.info("Leave %s rejected by %s", leave.id, actor.id)
        return LeaveService._build_request_response(leave)

    # ─────────────────────────────────────────────────────────────────
    # Listings
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _build_team_response(leave: LeaveRequest) -> TeamLeaveOut:
        return TeamLeaveOut(
            **LeaveService._build_request_response(leave).model_dump(),
            employee_name=leave.employee.name,
        )

    @staticmethod
    async def list_my_leaves(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        status: Optional[LeaveStatus] = None,
    ) -> list[LeaveRequestOut]:
        """The employee's own requests, newest first."""
        query = select(LeaveRequest).where(LeaveRequest.employee_id == employee_id)
        if status is not None:
            query = query.where(LeaveRequest.status == status)
        result = await db.execute(
            query.order_by(LeaveRequest.created_at.desc(), LeaveRequest.start_date.desc())
        )
        return [
            LeaveService._build_request_response(leave)
            for leave in result.scalars().all()
        ]

    @staticmethod
    async def list_assigned_leaves(
        db: AsyncSession,
        approver_id: uuid.UUID,
        *,
        status: Optional[LeaveStatus] = None,
    ) -> list[TeamLeaveOut]:
        """Requests routed to ``approver_id`` for review, newest first."""
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.approver_id == approver_id)
            .options(selectinload(LeaveRequest.employee))
        )
        if status is not None:
            query = query.where(LeaveRequest.status == status)
        result = await db.execute(
            query.order_by(LeaveRequest.created_at.desc(), LeaveRequest.start_date.desc())
        )
        return [
            LeaveService._build_team_response(leave)
            for leave in result.scalars().all()
        ]

    @staticmethod
    async def list_on_leave(
        db: AsyncSession,
        company_id: uuid.UUID,
        *,
        on: Optional[date] = None,
    ) -> list[TeamLeaveOut]:
        """Approved leaves in the company covering ``on`` (default: today, UTC)."""
        day = on or datetime.now(timezone.utc).date()
        result = await db.execute(
            select(LeaveRequest)
            .where(
                LeaveRequest.company_id == company_id,
                LeaveRequest.status == LeaveStatus.approved,
                LeaveRequest.start_date <= day,
                LeaveRequest.end_date >= day,
            )
            .options(selectinload(LeaveRequest.employee))
            .order_by(LeaveRequest.start_date)
        )
        return [
            LeaveService._build_team_response(leave)
            for leave in result.scalars().all()
        ]

    # ─────────────────────────────────────────────────────────────────
    # Backfill
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _resolve_backfill_employee(
        db: AsyncSession,
        company_id: uuid.UUID,
        row: BackfillRow,
    ) -> Employee:
        """Find the row's employee by id, else by email, within ``company_id``."""
        if row.employee_id not in (None, ""):
            try:
                ref: Any = uuid.UUID(str(row.employee_id).strip())
            except ValueError:
                raise ValidationException(
                    errors={"employee_id": [f"'{row.employee_id}' is not a valid UUID."]}
                )
            condition = Employee.id == ref
        elif row.email:
            try:
                ref = validate_email(row.email, check_deliverability=False).normalized
            except EmailNotValidError as exc:
                raise ValidationException(errors={"email": [str(exc)]})
            condition = Employee.email == ref
        else:
            raise ValidationException(
                errors={"employee": ["employee_id or email is required."]}
            )

        result = await db.execute(
            select(Employee)
            .where(condition, Employee.company_id == company_id)
            .execution_options(populate_existing=True)
        )
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(ref))
        return employee

    @staticmethod
    async def _backfill_row(
        db: AsyncSession,
        company_id: uuid.UUID,
        actor_id: uuid.UUID,
        index: int,
        row: BackfillRow,
    ) -> BackfillRowResult:
        employee = await LeaveService._resolve_backfill_employee(db, company_id, row)
        kind, fallback, start, end = LeaveService._validate_request_fields(
            row.leave_type, row.fallback_type, row.start_date, row.end_date,
        )

        leave = LeaveRequest(
            employee_id=employee.id,
            company_id=company_id,
            approver_id=actor_id,
            leave_type=kind,
            fallback_type=fallback,
            start_date=start,
            end_date=end,
            reason=row.reason or BACKFILL_DEFAULT_REASON,
            status=LeaveStatus.pending,
        )
        db.add(leave)
        await db.flush()

        await create_audit_entry(
            db,
            action="backfill",
            entity_type="leave_request",
            entity_id=leave.id,
            actor_id=actor_id,
            new_values=row.model_dump(mode="json"),
        )

        if not row.approve:
            return BackfillRowResult(
                index=index, leave_id=leave.id, status=LeaveStatus.pending,
            )

        approval = await LeaveService._approve_pending(
            db, leave, actor_id, require_fallback=True,
        )
        return BackfillRowResult(
            index=index,
            leave_id=leave.id,
            status=approval.leave.status,
            allocations=approval.leave.allocations,
        )

    @staticmethod
    async def backfill_leaves(
        db: AsyncSession,
        actor_id: uuid.UUID,
        entries: Sequence[BackfillRow],
    ) -> BackfillResult:
        """Import historical leaves for the actor's company.

        Each row runs in its own savepoint: a failing row is rolled back and
        reported, the rest of the batch still commits.
        """
        actor = await LeaveService._get_employee(db, actor_id)
        if not actor.is_admin:
            raise ForbiddenException(detail="Only admins can backfill leaves.")
        company_id = actor.company_id

        outcome = BackfillResult()
        for index, row in enumerate(entries):
            try:
                async with db.begin_nested():
                    row_result = await LeaveService._backfill_row(
                        db, company_id, actor_id, index, row,
                    )
            except ValidationException as exc:
                error = exc.first_message()
            except AppException as exc:
                error = exc.detail
            except AllocationError as exc:
                error = str(exc)
            else:
                outcome.created += 1
                if row_result.status is LeaveStatus.approved:
                    outcome.approved += 1
                outcome.rows.append(row_result)
                continue

            logger.warning("Backfill row %d failed: %s", index, error)
            outcome.errors.append(BackfillRowError(index=index, error=error))

        logger.info(
            "Backfill by %s: %d created, %d approved, %d failed",
            actor_id, outcome.created, outcome.approved, len(outcome.errors),
        )
        return outcome

    # ─────────────────────────────────────────────────────────────────
    # Ledger view
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_ledger(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        as_of: Optional[date] = None,
    ) -> LedgerSnapshot:
        """Catch accrual up to ``as_of`` (default: today, UTC) and return the ledger."""
        employee = await LeaveService._get_employee(db, employee_id)
        policy = await CompanyService.get_leave_policy(db, employee.company_id)
        target = as_of or datetime.now(timezone.utc).date()

        async def _sync(emp: Employee) -> Employee:
            await AccrualScheduler.ensure_accrued(db, emp, policy, target)
            return await BalanceLedger.refresh_balances(db, emp, policy.caps)

        employee = await BalanceLedger.with_retries(db, employee, _sync)
        return LeaveService._build_ledger_snapshot(employee)
