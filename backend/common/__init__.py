"""Common module — shared utilities for the leave ledger."""

from backend.common.audit import AuditTrail, create_audit_entry
from backend.common.constants import (
    ADMIN_ROLES,
    ALL_KINDS,
    PERMISSIONS,
    POOLED_KINDS,
    TERMINAL_LEAVE_STATUSES,
    DayOverrideKind,
    LeaveKind,
    LeaveStatus,
    UserRole,
)
from backend.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenException,
    LedgerConflictError,
    NotFoundException,
    StateConflictException,
    ValidationException,
    register_exception_handlers,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "DayOverrideKind",
    "LeaveKind",
    "LeaveStatus",
    "UserRole",
    "ADMIN_ROLES",
    "ALL_KINDS",
    "PERMISSIONS",
    "POOLED_KINDS",
    "TERMINAL_LEAVE_STATUSES",
    # Exceptions
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "LedgerConflictError",
    "NotFoundException",
    "StateConflictException",
    "ValidationException",
    "register_exception_handlers",
]
