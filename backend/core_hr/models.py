"""Core HR ORM model: Employee, including the leave ledger columns.

The ledger columns (pool, per-bucket usage, derived balances, accrual marker
and ``ledger_version``) live on the employee row so that one UPDATE can move
all of them together. Only ``backend.leave.ledger`` writes them.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.common.constants import ADMIN_ROLES, LeaveKind, UserRole
from backend.database import Base

if TYPE_CHECKING:
    from backend.company.models import Company
    from backend.leave.models import LeaveRequest


def _ledger_column() -> Mapped[Decimal]:
    return mapped_column(
        sa.Numeric(8, 2), nullable=False, default=Decimal("0"),
        server_default=sa.text("0"),
    )


# ═════════════════════════════════════════════════════════════════════
# Employee
# ═════════════════════════════════════════════════════════════════════


class Employee(Base):
    """Employee record — owner of exactly one leave ledger."""

    __tablename__ = "employees"

    # ── Primary key ─────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── Identity ────────────────────────────────────────────────────
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("companies.id"), nullable=False,
    )
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False,
    )
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.employee,
    )
    reporting_manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"),
    )
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=True,
    )

    # ── Leave ledger ────────────────────────────────────────────────
    total_leave_available: Mapped[Decimal] = _ledger_column()

    used_paid: Mapped[Decimal] = _ledger_column()
    used_casual: Mapped[Decimal] = _ledger_column()
    used_sick: Mapped[Decimal] = _ledger_column()
    used_unpaid: Mapped[Decimal] = _ledger_column()

    # Read model: max(0, cap - used); unpaid mirrors used_unpaid
    balance_paid: Mapped[Decimal] = _ledger_column()
    balance_casual: Mapped[Decimal] = _ledger_column()
    balance_sick: Mapped[Decimal] = _ledger_column()
    balance_unpaid: Mapped[Decimal] = _ledger_column()

    last_accrued_year_month: Mapped[Optional[str]] = mapped_column(sa.String(7))
    ledger_version: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0, server_default=sa.text("0"),
    )

    # ── Timestamps ──────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )

    # ── Relationships ───────────────────────────────────────────────
    company: Mapped["Company"] = relationship(back_populates="employees")
    reporting_manager: Mapped[Optional[Employee]] = relationship(
        remote_side=[id], foreign_keys=[reporting_manager_id],
    )
    leave_requests: Mapped[list["LeaveRequest"]] = relationship(
        back_populates="employee",
        foreign_keys="LeaveRequest.employee_id",
    )

    # ── Helpers ─────────────────────────────────────────────────────

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def usage(self) -> dict[LeaveKind, Decimal]:
        """Cumulative usage per bucket, as persisted."""
        return {
            LeaveKind.paid: self.used_paid,
            LeaveKind.casual: self.used_casual,
            LeaveKind.sick: self.used_sick,
            LeaveKind.unpaid: self.used_unpaid,
        }

    def balances(self) -> dict[LeaveKind, Decimal]:
        return {
            LeaveKind.paid: self.balance_paid,
            LeaveKind.casual: self.balance_casual,
            LeaveKind.sick: self.balance_sick,
            LeaveKind.unpaid: self.balance_unpaid,
        }

    def __repr__(self) -> str:
        return f"<Employee {self.email} pool={self.total_leave_available}>"
