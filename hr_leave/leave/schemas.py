"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request / *Update → request bodies (write)
  - *Out / *Response              → response bodies (read)

Dates, leave types and actions arrive as plain strings and are parsed by the
workflow so that malformed values surface as 400 business errors with a
specific message ("Invalid start or end date", "Invalid leave type").
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from hr_leave.calendar.schemas import WorkingDayResultOut
from hr_leave.common.constants import LeaveStatus, LeaveType, ReviewAction
from hr_leave.common.pagination import PaginationMeta


# ═════════════════════════════════════════════════════════════════════
# Leave Request (write)
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting a leave request."""

    employee_id: Optional[uuid.UUID] = Field(
        default=None,
        description="Defaults to the caller; admins may submit on behalf of others.",
    )
    start_date: str = Field(..., description="ISO date, inclusive", examples=["2024-01-15"])
    end_date: str = Field(..., description="ISO date, inclusive", examples=["2024-01-19"])
    leave_type: str = Field(..., examples=["Casual"])
    reason: Optional[str] = Field(default=None, max_length=1000)
    department_id: Optional[uuid.UUID] = Field(
        default=None,
        description="Defaults to the employee's current department.",
    )


class DecisionRequest(BaseModel):
    """Department-head or admin decision, with optional revision."""

    action: str = Field(..., examples=["approved"])
    comment: Optional[str] = Field(default=None, max_length=1000)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    paid_leave_days: Optional[int] = Field(default=None, ge=0)


class LeaveRequestUpdate(BaseModel):
    """Sparse edit; only the fields present in the body are applied."""

    start_date: Optional[str] = None
    end_date: Optional[str] = None
    leave_type: Optional[str] = None
    reason: Optional[str] = Field(default=None, max_length=1000)
    paid_leave_days: Optional[int] = Field(default=None, ge=0)


# ═════════════════════════════════════════════════════════════════════
# Leave Request (read)
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Leave request with its freshly computed working-day breakdown."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    employee_name: Optional[str] = None
    department_id: Optional[uuid.UUID] = None
    start_date: date
    end_date: date
    leave_type: LeaveType
    reason: Optional[str] = None
    status: LeaveStatus

    dept_head_ids: list[uuid.UUID] = []
    dept_head_id: Optional[uuid.UUID] = None
    dept_head_action: Optional[ReviewAction] = None
    dept_head_comment: Optional[str] = None
    dept_head_action_at: Optional[datetime] = None

    admin_id: Optional[uuid.UUID] = None
    admin_action: Optional[ReviewAction] = None
    admin_comment: Optional[str] = None
    admin_action_at: Optional[datetime] = None

    paid_leave_days: int
    unpaid_leave_days: int
    duration: Optional[WorkingDayResultOut] = None

    created_at: datetime
    updated_at: datetime


class LeaveRequestListResponse(BaseModel):
    data: list[LeaveRequestOut]
    meta: PaginationMeta


class LeaveDeletedOut(BaseModel):
    id: uuid.UUID
    message: str = "Leave request deleted successfully"


# ═════════════════════════════════════════════════════════════════════
# Statistics
# ═════════════════════════════════════════════════════════════════════


class StatsBucket(BaseModel):
    requests: int = 0
    days: int = 0


class StatusBuckets(BaseModel):
    total: StatsBucket = Field(default_factory=StatsBucket)
    pending: StatsBucket = Field(default_factory=StatsBucket)
    approved: StatsBucket = Field(default_factory=StatsBucket)
    rejected: StatsBucket = Field(default_factory=StatsBucket)


class LeaveStatsOut(StatusBuckets):
    """Status totals plus the same buckets broken down per leave type."""

    year: int
    window_start: date
    window_end: date
    by_type: dict[str, StatusBuckets] = {}


class TypeDayCounts(BaseModel):
    approved: int = 0
    pending: int = 0
    rejected: int = 0
    total: int = 0


class EmployeeLeaveStatsOut(BaseModel):
    employee_id: uuid.UUID
    employee_name: str
    department_id: Optional[uuid.UUID] = None
    total_days: int = 0
    by_type: dict[str, TypeDayCounts] = {}


class EmployeeLeaveStatsListResponse(BaseModel):
    year: int
    window_start: date
    window_end: date
    data: list[EmployeeLeaveStatsOut]
    meta: PaginationMeta
