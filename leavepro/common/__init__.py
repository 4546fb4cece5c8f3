"""Common module — shared utilities for Leave Pro."""

from leavepro.common.audit import AuditTrail, create_audit_entry
from leavepro.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    DATE_FORMAT,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    LeaveStatus,
    NotificationKind,
    UserRole,
)
from leavepro.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenError,
    InsufficientBalanceError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
    register_exception_handlers,
)
from leavepro.common.pagination import PaginationMeta, PaginationParams
from leavepro.common.transaction import unit_of_work

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "LeaveStatus",
    "NotificationKind",
    "UserRole",
    "ACTIVE_LEAVE_STATUSES",
    "DATE_FORMAT",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConflictError",
    "ForbiddenError",
    "InsufficientBalanceError",
    "InvalidTransitionError",
    "NotFoundError",
    "PersistenceError",
    "ValidationError",
    "register_exception_handlers",
    # Pagination
    "PaginationMeta",
    "PaginationParams",
    # Transactions
    "unit_of_work",
]
