"""Leave approval state machine — pure transition and allocation rules.

    pending_dept_head ──approve──▶ pending_admin ──approve──▶ approved
            │                            │
            └────────reject──────────────┴──────reject──────▶ rejected

Nothing in this module touches the database; ``LeaveService`` loads the
request, applies these rules and persists the outcome.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional

from hr_leave.common.constants import (
    TERMINAL_STATUSES,
    LeaveStatus,
    LeaveType,
    ReviewAction,
)
from hr_leave.common.exceptions import ValidationException

INVALID_DATES_MESSAGE = "Invalid start or end date"
START_AFTER_END_MESSAGE = "Start date cannot be after end date"


class ReviewStage(str, enum.Enum):
    dept_head = "dept_head"
    admin = "admin"


# Status a request must be in for each stage to act on it
STAGE_PRECONDITION: dict[ReviewStage, LeaveStatus] = {
    ReviewStage.dept_head: LeaveStatus.pending_dept_head,
    ReviewStage.admin: LeaveStatus.pending_admin,
}

_TRANSITIONS: dict[tuple[ReviewStage, ReviewAction], LeaveStatus] = {
    (ReviewStage.dept_head, ReviewAction.approved): LeaveStatus.pending_admin,
    (ReviewStage.dept_head, ReviewAction.rejected): LeaveStatus.rejected,
    (ReviewStage.admin, ReviewAction.approved): LeaveStatus.approved,
    (ReviewStage.admin, ReviewAction.rejected): LeaveStatus.rejected,
}

_STAGE_LABEL = {
    ReviewStage.dept_head: "department head",
    ReviewStage.admin: "admin",
}


# ═════════════════════════════════════════════════════════════════════
# Parsing
# ═════════════════════════════════════════════════════════════════════


def parse_iso_date(value: Any) -> date:
    """Parse an ISO date ("2024-01-15"); a datetime string keeps its date part."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationException({"date": [INVALID_DATES_MESSAGE]})
    text = value.strip()
    try:
        if "T" in text:
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            return datetime.fromisoformat(text).date()
        return date.fromisoformat(text)
    except ValueError:
        raise ValidationException({"date": [INVALID_DATES_MESSAGE]})


def resolve_period(
    start_raw: Optional[Any],
    end_raw: Optional[Any],
    *,
    current_start: Optional[date] = None,
    current_end: Optional[date] = None,
) -> tuple[date, date]:
    """Parse a (possibly partial) period, falling back to the stored dates."""
    start = parse_iso_date(start_raw) if start_raw is not None else current_start
    end = parse_iso_date(end_raw) if end_raw is not None else current_end
    if start is None or end is None:
        raise ValidationException({"date": [INVALID_DATES_MESSAGE]})
    if start > end:
        raise ValidationException({"date": [START_AFTER_END_MESSAGE]})
    return start, end


def parse_leave_type(value: Any) -> LeaveType:
    if isinstance(value, LeaveType):
        return value
    if isinstance(value, str):
        for member in LeaveType:
            if member.value.lower() == value.strip().lower():
                return member
    raise ValidationException({"leave_type": ["Invalid leave type"]})


def parse_action(value: Any) -> ReviewAction:
    if isinstance(value, ReviewAction):
        return value
    if isinstance(value, str):
        try:
            return ReviewAction(value.strip().lower())
        except ValueError:
            pass
    raise ValidationException(
        {"action": ["Invalid action. Use 'approved' or 'rejected'"]}
    )


# ═════════════════════════════════════════════════════════════════════
# State rules
# ═════════════════════════════════════════════════════════════════════


def ensure_stage_can_act(status: LeaveStatus, stage: ReviewStage) -> None:
    """Raise unless the request is waiting for *stage*."""
    expected = STAGE_PRECONDITION[stage]
    if status != expected:
        raise ValidationException(
            {
                "status": [
                    f"Leave request is not awaiting {_STAGE_LABEL[stage]} approval "
                    f"(current status: {LeaveStatus(status).value})"
                ]
            }
        )


def next_status(stage: ReviewStage, action: ReviewAction) -> LeaveStatus:
    return _TRANSITIONS[(stage, action)]


def ensure_editable(status: LeaveStatus) -> None:
    if status in TERMINAL_STATUSES:
        raise ValidationException(
            {
                "status": [
                    f"Leave request is already {LeaveStatus(status).value} "
                    "and can no longer be edited"
                ]
            }
        )


# ═════════════════════════════════════════════════════════════════════
# Allocation
# ═════════════════════════════════════════════════════════════════════


def allocate_paid_days(working_days: int, paid_days: int) -> tuple[int, int]:
    """Split *working_days* into (paid, unpaid); never clamps."""
    if paid_days < 0:
        raise ValidationException(
            {"paid_leave_days": ["Paid leave days cannot be negative"]}
        )
    if paid_days > working_days:
        raise ValidationException(
            {
                "paid_leave_days": [
                    f"Paid leave days ({paid_days}) cannot exceed "
                    f"total working days ({working_days})"
                ]
            }
        )
    return paid_days, working_days - paid_days


# ═════════════════════════════════════════════════════════════════════
# Decisions and sparse edits
# ═════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Decision:
    """A reviewer's verdict plus optional revision of period and pay."""

    action: ReviewAction
    comment: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    paid_leave_days: Optional[int] = None

    @classmethod
    def from_payload(cls, payload) -> Decision:
        return cls(
            action=parse_action(payload.action),
            comment=payload.comment,
            start_date=payload.start_date,
            end_date=payload.end_date,
            paid_leave_days=payload.paid_leave_days,
        )


@dataclass(frozen=True)
class LeaveRequestPatch:
    """Typed sparse edit; ``fields`` lists what the caller actually sent."""

    start_date: Optional[str] = None
    end_date: Optional[str] = None
    leave_type: Optional[str] = None
    reason: Optional[str] = None
    paid_leave_days: Optional[int] = None
    fields: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_update(cls, payload) -> LeaveRequestPatch:
        sent = payload.model_dump(exclude_unset=True)
        return cls(fields=frozenset(sent), **sent)

    def has(self, name: str) -> bool:
        return name in self.fields

    @property
    def touches_allocation(self) -> bool:
        return (
            (self.has("start_date") and self.start_date is not None)
            or (self.has("end_date") and self.end_date is not None)
            or (self.has("paid_leave_days") and self.paid_leave_days is not None)
        )


@dataclass(frozen=True)
class MergedLeave:
    """Field values a request will hold once a patch is applied."""

    start_date: date
    end_date: date
    leave_type: LeaveType
    reason: Optional[str]
    paid_leave_days: int
    recompute: bool


def merge_patch(leave_request, patch: LeaveRequestPatch) -> MergedLeave:
    """Overlay *patch* on the stored request without mutating it."""
    start, end = resolve_period(
        patch.start_date if patch.has("start_date") else None,
        patch.end_date if patch.has("end_date") else None,
        current_start=leave_request.start_date,
        current_end=leave_request.end_date,
    )
    leave_type = (
        parse_leave_type(patch.leave_type)
        if patch.has("leave_type") and patch.leave_type is not None
        else leave_request.leave_type
    )
    reason = patch.reason if patch.has("reason") else leave_request.reason
    paid = (
        patch.paid_leave_days
        if patch.has("paid_leave_days") and patch.paid_leave_days is not None
        else leave_request.paid_leave_days
    )
    return MergedLeave(
        start_date=start,
        end_date=end,
        leave_type=leave_type,
        reason=reason,
        paid_leave_days=paid,
        recompute=patch.touches_allocation,
    )
