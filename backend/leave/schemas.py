"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from backend.common.constants import LeaveKind, LeaveStatus
from backend.config import settings


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class BucketAmounts(BaseModel):
    """One amount per leave bucket."""

    model_config = ConfigDict(from_attributes=True)

    paid: Decimal = Decimal("0")
    casual: Decimal = Decimal("0")
    sick: Decimal = Decimal("0")
    unpaid: Decimal = Decimal("0")


class LedgerSnapshot(BaseModel):
    """Employee leave ledger as persisted after the last mutation."""

    employee_id: uuid.UUID
    total_leave_available: Decimal
    leave_usage: BucketAmounts
    leave_balances: BucketAmounts
    last_accrued_year_month: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for applying a leave request."""

    leave_type: LeaveKind
    fallback_type: Optional[LeaveKind] = Field(
        None,
        description="Bucket used once leave_type is exhausted. Defaults to unpaid at approval.",
    )
    from_date: date = Field(..., description="Leave start date (inclusive)")
    to_date: date = Field(..., description="Leave end date (inclusive)")
    reason: Optional[str] = Field(None, max_length=1000)

    @field_validator("leave_type", "fallback_type", mode="before")
    @classmethod
    def lowercase_kind(cls, value):
        if isinstance(value, str):
            return value.strip().lower() or None
        return value


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request response, including the allocation snapshot."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    company_id: uuid.UUID
    approver_id: Optional[uuid.UUID] = None
    leave_type: LeaveKind
    fallback_type: Optional[LeaveKind] = None
    start_date: date
    end_date: date
    reason: Optional[str] = None
    status: LeaveStatus
    admin_message: Optional[str] = None
    chargeable_days: Optional[Decimal] = None
    allocations: BucketAmounts = Field(default_factory=BucketAmounts)
    reviewed_by: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TeamLeaveOut(LeaveRequestOut):
    """Leave request with the requester's name, for approvers and team views."""

    employee_name: str


# ═════════════════════════════════════════════════════════════════════
# Leave Approve / Reject
# ═════════════════════════════════════════════════════════════════════


class LeaveApproveRequest(BaseModel):
    """Payload for approving a leave request."""

    message: Optional[str] = Field(None, max_length=500)


class LeaveRejectRequest(BaseModel):
    """Payload for rejecting a leave request."""

    message: Optional[str] = Field(None, max_length=500)


class LeaveApprovalOut(BaseModel):
    """Approved request plus the ledger it was charged against."""

    leave: LeaveRequestOut
    ledger: LedgerSnapshot
    month_accrued_for: str
    pool_deducted: Decimal


# ═════════════════════════════════════════════════════════════════════
# Backfill import
# ═════════════════════════════════════════════════════════════════════


class BackfillRow(BaseModel):
    """One historical leave to import.

    The employee reference, types and dates are kept as raw strings so an
    invalid value fails only its own row instead of the whole batch.
    """

    employee_id: Optional[str] = None
    email: Optional[str] = None
    leave_type: Optional[str] = None
    fallback_type: Optional[str] = None
    start_date: Optional[str] = Field(None, description="YYYY-MM-DD")
    end_date: Optional[str] = Field(None, description="YYYY-MM-DD")
    reason: Optional[str] = Field(None, max_length=1000)
    approve: bool = True


class BackfillRequest(BaseModel):
    entries: list[BackfillRow] = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_size(self) -> "BackfillRequest":
        if len(self.entries) > settings.BACKFILL_MAX_ROWS:
            raise ValueError(
                f"A backfill batch may contain at most {settings.BACKFILL_MAX_ROWS} entries."
            )
        return self


class BackfillRowError(BaseModel):
    index: int
    error: str


class BackfillRowResult(BaseModel):
    index: int
    leave_id: uuid.UUID
    status: LeaveStatus
    allocations: Optional[BucketAmounts] = None


class BackfillResult(BaseModel):
    created: int = 0
    approved: int = 0
    errors: list[BackfillRowError] = Field(default_factory=list)
    rows: list[BackfillRowResult] = Field(default_factory=list)
