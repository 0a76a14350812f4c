"""Enums and constants for the leave engine."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "Employee"
    department_head = "DepartmentHead"
    admin = "Admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending_dept_head = "pending_dept_head"
    pending_admin = "pending_admin"
    approved = "approved"
    rejected = "rejected"


class LeaveType(str, enum.Enum):
    casual = "Casual"
    medical = "Medical"
    annual = "Annual"


class ReviewAction(str, enum.Enum):
    approved = "approved"
    rejected = "rejected"


class ShortLeaveType(str, enum.Enum):
    sick = "sick"
    casual = "casual"
    other = "other"


class ShiftType(str, enum.Enum):
    day = "day"
    night = "night"


PENDING_STATUSES: frozenset[LeaveStatus] = frozenset(
    {LeaveStatus.pending_dept_head, LeaveStatus.pending_admin}
)
TERMINAL_STATUSES: frozenset[LeaveStatus] = frozenset(
    {LeaveStatus.approved, LeaveStatus.rejected}
)


# ── Calendar ────────────────────────────────────────────────────────

class EventType(str, enum.Enum):
    party = "party"
    meeting = "meeting"
    training = "training"
    discussion = "discussion"
    holiday = "holiday"
    conference = "conference"
    workshop = "workshop"
    birthday = "birthday"
    webinar = "webinar"
    other = "other"
    make_up_day = "make-up-day"
    on_call = "on-call"
    weekend = "weekend"
    work_anniversary = "work-aniversary"


# Event types that remove a day from the working-day count
EXCEPTION_EVENT_TYPES: frozenset[EventType] = frozenset(
    {EventType.holiday, EventType.weekend}
)

WEEKDAY_NUMBERS: dict[str, int] = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}


# ── Notifications ───────────────────────────────────────────────────

class NotificationType(str, enum.Enum):
    info = "info"
    action_required = "action_required"
    approval = "approval"
    alert = "alert"


# ── Misc constants ──────────────────────────────────────────────────

DISPLAY_DATE_FORMAT = "%d %b %Y"          # 05 Jan 2024
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10
