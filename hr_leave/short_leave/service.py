"""Short-leave service layer — a few hours off within one working day.

Business logic:
  - Submission on a working day, inside the employee's shift hours
  - The same two-stage review as full-day leave; an approval may move the slot
  - Direct edits of non-terminal requests, physical deletion
  - Filtered, paginated listings, newest date first
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hr_leave.calendar.service import CalendarEventSource
from hr_leave.common.constants import (
    DEFAULT_PAGE_SIZE,
    LeaveStatus,
    ReviewAction,
    ShiftType,
    UserRole,
)
from hr_leave.common.exceptions import (
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from hr_leave.common.pagination import PaginationMeta
from hr_leave.core_hr.models import Employee
from hr_leave.database import utcnow
from hr_leave.leave.service import LeaveService
from hr_leave.leave.workflow import (
    ReviewStage,
    ensure_editable,
    ensure_stage_can_act,
    next_status,
    parse_action,
)
from hr_leave.notifications.email import EmailService, get_email_service
from hr_leave.notifications.service import LeaveNotifier
from hr_leave.short_leave.models import ShortLeaveRequest
from hr_leave.short_leave.schemas import (
    ShortLeaveDeletedOut,
    ShortLeaveListResponse,
    ShortLeaveOut,
)
from hr_leave.short_leave.timing import (
    ShiftWindow,
    ShortLeaveSpan,
    parse_short_leave_date,
    parse_short_leave_type,
)

logger = logging.getLogger(__name__)

_REVIEWER_LABEL = {
    ReviewStage.dept_head: "Department Head",
    ReviewStage.admin: "Admin",
}


class ShortLeaveService:
    """Async short-leave operations: submit, decide, edit, delete, list."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _notifier(db: AsyncSession, email_service: Optional[EmailService]) -> LeaveNotifier:
        return LeaveNotifier(db, email_service or get_email_service())

    @staticmethod
    async def _load_request(db: AsyncSession, request_id: uuid.UUID) -> ShortLeaveRequest:
        result = await db.execute(
            select(ShortLeaveRequest)
            .where(ShortLeaveRequest.id == request_id)
            .options(selectinload(ShortLeaveRequest.employee))
        )
        short_leave = result.scalars().first()
        if short_leave is None:
            raise NotFoundException("Short leave request", str(request_id))
        return short_leave

    @staticmethod
    def _build_response(short_leave: ShortLeaveRequest) -> ShortLeaveOut:
        out = ShortLeaveOut.model_validate(short_leave)
        employee = short_leave.employee
        out.employee_name = employee.full_name if employee is not None else None
        return out

    @staticmethod
    async def _ensure_working_day(db: AsyncSession, day: date) -> None:
        """Raise when *day* is a holiday or weekend."""
        spans = await CalendarEventSource(db).fetch_spans(day, day)
        if not spans:
            return
        kind = sorted(span.kind.value for span in spans)[0]
        raise ValidationException(
            {
                "leave_date": [
                    f"Cannot apply for short leave on {kind}. Short leave "
                    "requests are only allowed on working days."
                ]
            }
        )

    @staticmethod
    def _measure(employee: Employee, start_time, end_time) -> ShortLeaveSpan:
        window = ShiftWindow.for_shift(employee.shift or ShiftType.day)
        return window.measure(start_time, end_time)

    @staticmethod
    def _apply_span(short_leave: ShortLeaveRequest, day: date, span: ShortLeaveSpan) -> None:
        short_leave.leave_date = day
        short_leave.start_time = span.start_time
        short_leave.end_time = span.end_time
        short_leave.duration_hours = span.duration_hours

    @staticmethod
    async def _revise_slot(
        db: AsyncSession,
        short_leave: ShortLeaveRequest,
        *,
        leave_date=None,
        start_time=None,
        end_time=None,
    ) -> None:
        """Re-validate date and times, falling back to the stored values."""
        day = (
            parse_short_leave_date(leave_date)
            if leave_date is not None
            else short_leave.leave_date
        )
        span = ShortLeaveService._measure(
            short_leave.employee,
            start_time if start_time is not None else short_leave.start_time,
            end_time if end_time is not None else short_leave.end_time,
        )
        if day != short_leave.leave_date:
            await ShortLeaveService._ensure_working_day(db, day)
        ShortLeaveService._apply_span(short_leave, day, span)

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit_short_leave(
        db: AsyncSession,
        *,
        employee_id: uuid.UUID,
        leave_date: str,
        start_time: str,
        end_time: str,
        leave_type: Optional[str] = None,
        reason: Optional[str] = None,
        department_id: Optional[uuid.UUID] = None,
        email_service: Optional[EmailService] = None,
    ) -> ShortLeaveOut:
        """Create a short leave in ``pending_dept_head``."""

        # ── Parse input ─────────────────────────────────────────────
        day = parse_short_leave_date(leave_date)
        parsed_type = parse_short_leave_type(leave_type)

        # ── Load employee ───────────────────────────────────────────
        emp_result = await db.execute(select(Employee).where(Employee.id == employee_id))
        employee = emp_result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))

        # ── Validate slot ───────────────────────────────────────────
        await ShortLeaveService._ensure_working_day(db, day)
        span = ShortLeaveService._measure(employee, start_time, end_time)

        # ── Capture approvers ───────────────────────────────────────
        target_department = department_id or employee.department_id
        head_ids = await LeaveService._department_head_ids(db, target_department)

        short_leave = ShortLeaveRequest(
            employee_id=employee.id,
            department_id=target_department,
            leave_type=parsed_type,
            reason=reason,
            status=LeaveStatus.pending_dept_head,
            dept_head_ids=[str(head_id) for head_id in head_ids],
        )
        ShortLeaveService._apply_span(short_leave, day, span)
        short_leave.employee = employee
        db.add(short_leave)
        await db.commit()

        logger.info(
            "Short leave %s submitted by %s: %s %s-%s (%.2f h)",
            short_leave.id, employee.id, day, span.start_time, span.end_time,
            span.duration_hours,
        )
        response = ShortLeaveService._build_response(short_leave)

        await ShortLeaveService._notifier(db, email_service).short_leave_submitted(
            short_leave, employee,
        )
        return response

    # ─────────────────────────────────────────────────────────────────
    # Decisions
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _decide(
        db: AsyncSession,
        short_leave: ShortLeaveRequest,
        stage: ReviewStage,
        payload,
    ) -> ReviewAction:
        action = parse_action(payload.action)
        ensure_stage_can_act(short_leave.status, stage)

        if action == ReviewAction.approved and any(
            value is not None
            for value in (payload.leave_date, payload.start_time, payload.end_time)
        ):
            await ShortLeaveService._revise_slot(
                db,
                short_leave,
                leave_date=payload.leave_date,
                start_time=payload.start_time,
                end_time=payload.end_time,
            )

        short_leave.status = next_status(stage, action)
        short_leave.updated_at = utcnow()
        return action

    @staticmethod
    async def department_head_decision(
        db: AsyncSession,
        request_id: uuid.UUID,
        payload,
        *,
        actor: Optional[Employee] = None,
        email_service: Optional[EmailService] = None,
    ) -> ShortLeaveOut:
        """First-stage review: approve to ``pending_admin`` or reject."""
        short_leave = await ShortLeaveService._load_request(db, request_id)
        if actor is not None and actor.role != UserRole.admin:
            if actor.id not in short_leave.dept_head_id_list:
                raise ForbiddenException(
                    "You are not a department head for this short leave request."
                )

        action = await ShortLeaveService._decide(
            db, short_leave, ReviewStage.dept_head, payload,
        )
        short_leave.dept_head_id = actor.id if actor is not None else None
        short_leave.dept_head_action = action
        short_leave.dept_head_comment = payload.comment
        short_leave.dept_head_action_at = utcnow()
        await db.commit()

        logger.info(
            "Short leave %s %s by department head %s",
            short_leave.id, action.value, short_leave.dept_head_id,
        )
        response = ShortLeaveService._build_response(short_leave)
        await ShortLeaveService._notifier(db, email_service).short_leave_decided(
            short_leave,
            short_leave.employee,
            reviewer=_REVIEWER_LABEL[ReviewStage.dept_head],
            approved=action == ReviewAction.approved,
            comment=payload.comment,
        )
        return response

    @staticmethod
    async def admin_decision(
        db: AsyncSession,
        request_id: uuid.UUID,
        admin_id: uuid.UUID,
        payload,
        *,
        email_service: Optional[EmailService] = None,
    ) -> ShortLeaveOut:
        """Final review of a short leave awaiting admin approval."""
        short_leave = await ShortLeaveService._load_request(db, request_id)

        action = await ShortLeaveService._decide(
            db, short_leave, ReviewStage.admin, payload,
        )
        short_leave.admin_id = admin_id
        short_leave.admin_action = action
        short_leave.admin_comment = payload.comment
        short_leave.admin_action_at = utcnow()
        await db.commit()

        logger.info("Short leave %s %s by admin %s", short_leave.id, action.value, admin_id)
        response = ShortLeaveService._build_response(short_leave)
        await ShortLeaveService._notifier(db, email_service).short_leave_decided(
            short_leave,
            short_leave.employee,
            reviewer=_REVIEWER_LABEL[ReviewStage.admin],
            approved=action == ReviewAction.approved,
            comment=payload.comment,
        )
        return response

    # ─────────────────────────────────────────────────────────────────
    # Edit / delete
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def update_short_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        payload,
        *,
        actor: Optional[Employee] = None,
        email_service: Optional[EmailService] = None,
    ) -> ShortLeaveOut:
        """Apply a sparse edit; status is never changed here."""
        short_leave = await ShortLeaveService._load_request(db, request_id)
        LeaveService._ensure_can_access(short_leave, actor)
        ensure_editable(short_leave.status)

        sent = payload.model_dump(exclude_unset=True)
        parsed_type = (
            parse_short_leave_type(sent["leave_type"]) if "leave_type" in sent else None
        )
        if {"leave_date", "start_time", "end_time"} & set(sent):
            await ShortLeaveService._revise_slot(
                db,
                short_leave,
                leave_date=sent.get("leave_date"),
                start_time=sent.get("start_time"),
                end_time=sent.get("end_time"),
            )
        if parsed_type is not None:
            short_leave.leave_type = parsed_type
        if "reason" in sent:
            short_leave.reason = sent["reason"]
        short_leave.updated_at = utcnow()
        await db.commit()

        logger.info("Short leave %s updated (fields: %s)", short_leave.id, sorted(sent))
        response = ShortLeaveService._build_response(short_leave)
        await ShortLeaveService._notifier(db, email_service).short_leave_updated(
            short_leave, short_leave.employee,
        )
        return response

    @staticmethod
    async def delete_short_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        actor: Optional[Employee] = None,
    ) -> ShortLeaveDeletedOut:
        short_leave = await ShortLeaveService._load_request(db, request_id)
        LeaveService._ensure_can_access(short_leave, actor)

        await db.delete(short_leave)
        await db.commit()
        logger.info("Short leave %s deleted", request_id)
        return ShortLeaveDeletedOut(id=request_id)

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_short_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        actor: Optional[Employee] = None,
    ) -> ShortLeaveOut:
        short_leave = await ShortLeaveService._load_request(db, request_id)
        LeaveService._ensure_can_access(short_leave, actor)
        return ShortLeaveService._build_response(short_leave)

    @staticmethod
    async def list_short_leaves(
        db: AsyncSession,
        *,
        employee_ids: Optional[Sequence[uuid.UUID]] = None,
        statuses: Optional[Sequence[LeaveStatus]] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> ShortLeaveListResponse:
        """List short leaves, newest date first.

        ``employee_ids`` is an allow-list: an empty sequence matches nothing,
        ``None`` applies no employee restriction.
        """
        if employee_ids is not None and not employee_ids:
            return ShortLeaveListResponse(
                data=[],
                meta=PaginationMeta.build(page=page, page_size=page_size, total=0),
            )

        query = (
            select(ShortLeaveRequest)
            .options(selectinload(ShortLeaveRequest.employee))
            .order_by(ShortLeaveRequest.leave_date.desc(), ShortLeaveRequest.created_at.desc())
        )
        if employee_ids is not None:
            query = query.where(ShortLeaveRequest.employee_id.in_(list(employee_ids)))
        if statuses:
            query = query.where(ShortLeaveRequest.status.in_(list(statuses)))
        if start_date is not None:
            query = query.where(ShortLeaveRequest.leave_date >= start_date)
        if end_date is not None:
            query = query.where(ShortLeaveRequest.leave_date <= end_date)

        count_q = query.with_only_columns(func.count()).order_by(None)
        total = (await db.execute(count_q)).scalar_one()

        offset = (page - 1) * page_size
        result = await db.execute(query.offset(offset).limit(page_size))
        return ShortLeaveListResponse(
            data=[ShortLeaveService._build_response(r) for r in result.scalars().all()],
            meta=PaginationMeta.build(page=page, page_size=page_size, total=total),
        )
