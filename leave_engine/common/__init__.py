"""Common module — shared utilities for the leave engine."""

from leave_engine.common.audit import AuditTrail, create_audit_entry
from leave_engine.common.constants import (
    DAY_CATEGORIES,
    DEFAULT_PAGE_SIZE,
    HOUR_CATEGORIES,
    HOURS_PER_DAY,
    LEGAL_CATEGORIES,
    MAX_PAGE_SIZE,
    AdjustmentTarget,
    CalendarSyncStatus,
    DayClass,
    LeaveCategory,
    LeaveStatus,
    LeaveUnit,
    UserRole,
)
from leave_engine.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenException,
    InsufficientBalance,
    InvalidAmount,
    InvalidState,
    LedgerConflict,
    NotFoundException,
    UpstreamUnavailable,
    ValidationException,
    register_exception_handlers,
)
from leave_engine.common.locks import KeyedLock
from leave_engine.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "AdjustmentTarget",
    "CalendarSyncStatus",
    "DayClass",
    "LeaveCategory",
    "LeaveStatus",
    "LeaveUnit",
    "UserRole",
    "DAY_CATEGORIES",
    "HOUR_CATEGORIES",
    "LEGAL_CATEGORIES",
    "HOURS_PER_DAY",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "InsufficientBalance",
    "InvalidAmount",
    "InvalidState",
    "LedgerConflict",
    "NotFoundException",
    "UpstreamUnavailable",
    "ValidationException",
    "register_exception_handlers",
    # Locks
    "KeyedLock",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
