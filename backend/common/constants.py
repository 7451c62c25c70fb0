"""Enums and constants for the leave ledger — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum
from decimal import Decimal


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    hr_admin = "hr_admin"
    system_admin = "system_admin"


# Roles that may act on any leave request / ledger inside their company.
ADMIN_ROLES: frozenset[UserRole] = frozenset({UserRole.hr_admin, UserRole.system_admin})


# ── Leave ───────────────────────────────────────────────────────────

class LeaveKind(str, enum.Enum):
    """Ledger buckets. ``unpaid`` is uncapped and never touches the pool."""

    paid = "paid"
    casual = "casual"
    sick = "sick"
    unpaid = "unpaid"


# Buckets funded by the shared pool (``total_leave_available``).
POOLED_KINDS: tuple[LeaveKind, ...] = (LeaveKind.paid, LeaveKind.casual, LeaveKind.sick)
ALL_KINDS: tuple[LeaveKind, ...] = POOLED_KINDS + (LeaveKind.unpaid,)


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


TERMINAL_LEAVE_STATUSES: frozenset[LeaveStatus] = frozenset(
    {LeaveStatus.approved, LeaveStatus.rejected}
)


# ── Company calendar ────────────────────────────────────────────────

class DayOverrideKind(str, enum.Enum):
    working = "working"
    holiday = "holiday"
    half_day = "half_day"


# ── Role-based permissions ──────────────────────────────────────────

PERMISSIONS: dict[UserRole, list[str]] = {
    UserRole.employee: [
        "leave:request",
        "leave:read_own",
    ],
    UserRole.manager: [
        "leave:request",
        "leave:read_own",
    ],
    UserRole.hr_admin: [
        "leave:request",
        "leave:read_own",
        "leave:backfill",
        "calendar:configure",
        "policy:configure",
    ],
    UserRole.system_admin: [
        "leave:request",
        "leave:read_own",
        "leave:backfill",
        "calendar:configure",
        "policy:configure",
    ],
}

# ── Misc constants ──────────────────────────────────────────────────

WEEKEND_DAYS: frozenset[int] = frozenset({5, 6})   # Sat, Sun (date.weekday())
HALF_DAY = Decimal("0.5")
FULL_DAY = Decimal("1")
ZERO = Decimal("0")
YEAR_MONTH_FORMAT = "%Y-%m"
BACKFILL_DEFAULT_REASON = "Backfill import"
