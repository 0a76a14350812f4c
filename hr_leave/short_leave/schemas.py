"""Short-leave Pydantic v2 schemas.

Dates, times, types and actions arrive as plain strings and are parsed by the
service so that malformed values surface as 400 business errors.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from hr_leave.common.constants import LeaveStatus, ReviewAction, ShortLeaveType
from hr_leave.common.pagination import PaginationMeta


# ═════════════════════════════════════════════════════════════════════
# Short Leave (write)
# ═════════════════════════════════════════════════════════════════════


class ShortLeaveCreate(BaseModel):
    """Payload for requesting a few hours off on one working day."""

    employee_id: Optional[uuid.UUID] = Field(
        default=None,
        description="Defaults to the caller; admins may request on behalf of others.",
    )
    leave_date: str = Field(..., description="ISO date", examples=["2024-01-15"])
    start_time: str = Field(..., examples=["14:00"])
    end_time: str = Field(..., examples=["16:30"])
    leave_type: Optional[str] = Field(default=None, examples=["casual"])
    reason: Optional[str] = Field(default=None, max_length=1000)
    department_id: Optional[uuid.UUID] = None


class ShortLeaveDecisionRequest(BaseModel):
    """Department-head or admin decision; an approval may move the slot."""

    action: str = Field(..., examples=["approved"])
    comment: Optional[str] = Field(default=None, max_length=1000)
    leave_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None


class ShortLeaveUpdate(BaseModel):
    """Sparse edit; only the fields present in the body are applied."""

    leave_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    leave_type: Optional[str] = None
    reason: Optional[str] = Field(default=None, max_length=1000)


# ═════════════════════════════════════════════════════════════════════
# Short Leave (read)
# ═════════════════════════════════════════════════════════════════════


class ShortLeaveOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    employee_name: Optional[str] = None
    department_id: Optional[uuid.UUID] = None
    leave_date: date
    start_time: str
    end_time: str
    duration_hours: float
    leave_type: ShortLeaveType
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

    created_at: datetime
    updated_at: datetime


class ShortLeaveListResponse(BaseModel):
    data: list[ShortLeaveOut]
    meta: PaginationMeta


class ShortLeaveDeletedOut(BaseModel):
    id: uuid.UUID
    message: str = "Short leave request deleted successfully"
