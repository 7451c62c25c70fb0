"""Leave ORM model: LeaveRequest with its allocation snapshot."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.common.constants import LeaveKind, LeaveStatus
from backend.database import Base
from backend.leave.allocation import Allocation

if TYPE_CHECKING:
    from backend.core_hr.models import Employee


def _allocation_column() -> Mapped[Decimal]:
    return mapped_column(
        sa.Numeric(7, 2), nullable=False, default=Decimal("0"),
        server_default=sa.text("0"),
    )


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("start_date <= end_date", name="ck_leave_request_range"),
        sa.Index("ix_leave_requests_employee_status", "employee_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("companies.id"), nullable=False
    )
    approver_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    leave_type: Mapped[LeaveKind] = mapped_column(
        sa.Enum(LeaveKind, name="leave_kind"), nullable=False,
    )
    fallback_type: Mapped[Optional[LeaveKind]] = mapped_column(
        sa.Enum(LeaveKind, name="leave_kind"),
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        nullable=False,
        default=LeaveStatus.pending,
    )
    admin_message: Mapped[Optional[str]] = mapped_column(sa.Text)

    # Written once, at approval
    chargeable_days: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(6, 1))
    alloc_paid: Mapped[Decimal] = _allocation_column()
    alloc_casual: Mapped[Decimal] = _allocation_column()
    alloc_sick: Mapped[Decimal] = _allocation_column()
    alloc_unpaid: Mapped[Decimal] = _allocation_column()

    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    employee: Mapped["Employee"] = relationship(
        back_populates="leave_requests", foreign_keys=[employee_id]
    )
    approver: Mapped[Optional["Employee"]] = relationship(
        foreign_keys=[approver_id]
    )

    @property
    def allocations(self) -> Allocation:
        return Allocation(
            paid=self.alloc_paid or Decimal("0"),
            casual=self.alloc_casual or Decimal("0"),
            sick=self.alloc_sick or Decimal("0"),
            unpaid=self.alloc_unpaid or Decimal("0"),
        )

    def __repr__(self) -> str:
        return (
            f"<LeaveRequest {self.leave_type} {self.start_date}..{self.end_date} "
            f"{self.status}>"
        )
