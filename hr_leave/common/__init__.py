"""Common module — shared enums, exceptions and pagination."""

from hr_leave.common.constants import (
    DEFAULT_PAGE_SIZE,
    EXCEPTION_EVENT_TYPES,
    MAX_PAGE_SIZE,
    PENDING_STATUSES,
    TERMINAL_STATUSES,
    EventType,
    LeaveStatus,
    LeaveType,
    NotificationType,
    ReviewAction,
    ShiftType,
    ShortLeaveType,
    UserRole,
)
from hr_leave.common.exceptions import (
    AppException,
    DependencyException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from hr_leave.common.pagination import (
    PaginationMeta,
    PaginationParams,
)

__all__ = [
    # Constants / Enums
    "EventType",
    "LeaveStatus",
    "LeaveType",
    "NotificationType",
    "ReviewAction",
    "ShiftType",
    "ShortLeaveType",
    "UserRole",
    "EXCEPTION_EVENT_TYPES",
    "PENDING_STATUSES",
    "TERMINAL_STATUSES",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "DependencyException",
    "ForbiddenException",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginationMeta",
    "PaginationParams",
]
