"""Leave service layer — submission, two-stage approval, edits and listings.

Business logic:
  - Submission with working-day validation and full-pay initial allocation
  - Department-head and admin decisions with optional period / pay revision
  - Direct edits of non-terminal requests under the paid + unpaid invariant
  - Physical deletion
  - Filtered, paginated listings with a freshly computed duration per request

Each transition is committed before its notifications go out; notification
delivery is best-effort and never undoes a committed transition.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hr_leave.calendar.service import (
    WorkingDayCalculator,
    WorkingDayResult,
    count_working_days,
)
from hr_leave.calendar.schemas import WorkingDayResultOut
from hr_leave.common.constants import (
    DEFAULT_PAGE_SIZE,
    LeaveStatus,
    LeaveType,
    ReviewAction,
    UserRole,
)
from hr_leave.common.exceptions import (
    ForbiddenException,
    NotFoundException,
)
from hr_leave.common.pagination import PaginationMeta
from hr_leave.core_hr.models import Employee, department_heads
from hr_leave.database import utcnow
from hr_leave.leave.models import LeaveRequest
from hr_leave.leave.schemas import (
    LeaveDeletedOut,
    LeaveRequestListResponse,
    LeaveRequestOut,
)
from hr_leave.leave.validator import LeavePeriodValidator
from hr_leave.leave.workflow import (
    Decision,
    LeaveRequestPatch,
    ReviewStage,
    allocate_paid_days,
    ensure_editable,
    ensure_stage_can_act,
    merge_patch,
    next_status,
    parse_leave_type,
    resolve_period,
)
from hr_leave.notifications.email import EmailService, get_email_service
from hr_leave.notifications.service import LeaveNotifier

logger = logging.getLogger(__name__)


def year_window(year: int) -> tuple[date, date]:
    return date(year, 1, 1), date(year, 12, 31)


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: submit, decide, edit, delete, list."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _notifier(db: AsyncSession, email_service: Optional[EmailService]) -> LeaveNotifier:
        return LeaveNotifier(db, email_service or get_email_service())

    @staticmethod
    async def _load_request(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .options(selectinload(LeaveRequest.employee))
        )
        leave_req = result.scalars().first()
        if leave_req is None:
            raise NotFoundException("Leave request", str(request_id))
        return leave_req

    @staticmethod
    async def _department_head_ids(
        db: AsyncSession,
        department_id: Optional[uuid.UUID],
    ) -> list[uuid.UUID]:
        if department_id is None:
            return []
        result = await db.execute(
            select(department_heads.c.employee_id).where(
                department_heads.c.department_id == department_id
            )
        )
        return [row[0] for row in result.all()]

    @staticmethod
    async def managed_department_ids(
        db: AsyncSession,
        head_id: uuid.UUID,
    ) -> list[uuid.UUID]:
        result = await db.execute(
            select(department_heads.c.department_id).where(
                department_heads.c.employee_id == head_id
            )
        )
        return [row[0] for row in result.all()]

    @staticmethod
    def _ensure_can_access(leave_req: LeaveRequest, actor: Optional[Employee]) -> None:
        """Owner, candidate department heads and admins may touch a request."""
        if actor is None or actor.role == UserRole.admin:
            return
        if actor.id == leave_req.employee_id or actor.id in leave_req.dept_head_id_list:
            return
        raise ForbiddenException("You do not have access to this leave request.")

    @staticmethod
    def _ensure_can_allocate(leave_req: LeaveRequest, actor: Optional[Employee]) -> None:
        """Only a candidate department head or an admin sets the paid split."""
        if actor is None or actor.role == UserRole.admin:
            return
        if actor.id in leave_req.dept_head_id_list:
            return
        raise ForbiddenException(
            "Only a reviewing department head or an admin can change paid leave days."
        )

    @staticmethod
    def _build_response(
        leave_req: LeaveRequest,
        duration: Optional[WorkingDayResult] = None,
        employee: Optional[Employee] = None,
    ) -> LeaveRequestOut:
        out = LeaveRequestOut.model_validate(leave_req)
        out.employee_name = employee.full_name if employee is not None else None
        if duration is not None:
            out.duration = WorkingDayResultOut.model_validate(duration)
        return out

    @staticmethod
    async def _durations(
        db: AsyncSession,
        requests: Sequence[LeaveRequest],
    ) -> dict[uuid.UUID, WorkingDayResult]:
        """Working-day breakdown per request from a single calendar read."""
        if not requests:
            return {}
        window_start = min(r.start_date for r in requests)
        window_end = max(r.end_date for r in requests)
        index = await WorkingDayCalculator.for_session(db).load_index(window_start, window_end)
        return {r.id: count_working_days(r.start_date, r.end_date, index) for r in requests}

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit_leave_request(
        db: AsyncSession,
        *,
        employee_id: uuid.UUID,
        start_date: str,
        end_date: str,
        leave_type: str,
        reason: Optional[str] = None,
        department_id: Optional[uuid.UUID] = None,
        email_service: Optional[EmailService] = None,
    ) -> LeaveRequestOut:
        """Create a request in ``pending_dept_head`` with full pay."""

        # ── Parse input ─────────────────────────────────────────────
        start, end = resolve_period(start_date, end_date)
        parsed_type = parse_leave_type(leave_type)

        # ── Load employee ───────────────────────────────────────────
        emp_result = await db.execute(
            select(Employee).where(Employee.id == employee_id)
        )
        employee = emp_result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))

        # ── Validate period ─────────────────────────────────────────
        validator = LeavePeriodValidator(WorkingDayCalculator.for_session(db))
        duration = await validator.validate_or_raise(start, end)

        # ── Capture approvers ───────────────────────────────────────
        target_department = department_id or employee.department_id
        head_ids = await LeaveService._department_head_ids(db, target_department)

        # ── Create leave request ────────────────────────────────────
        leave_req = LeaveRequest(
            employee_id=employee.id,
            department_id=target_department,
            start_date=start,
            end_date=end,
            leave_type=parsed_type,
            reason=reason,
            status=LeaveStatus.pending_dept_head,
            dept_head_ids=[str(head_id) for head_id in head_ids],
            paid_leave_days=duration.working_days,
            unpaid_leave_days=0,
        )
        db.add(leave_req)
        await db.commit()

        logger.info(
            "Leave request %s submitted by %s: %s..%s (%d working days)",
            leave_req.id, employee.id, start, end, duration.working_days,
        )
        response = LeaveService._build_response(leave_req, duration, employee)

        # ── Notify approvers ────────────────────────────────────────
        await LeaveService._notifier(db, email_service).leave_submitted(leave_req, employee)
        return response

    # ─────────────────────────────────────────────────────────────────
    # Decisions
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _apply_decision(
        db: AsyncSession,
        leave_req: LeaveRequest,
        stage: ReviewStage,
        decision: Decision,
    ) -> WorkingDayResult:
        """Validate and apply *decision*; nothing is mutated on failure."""
        ensure_stage_can_act(leave_req.status, stage)
        validator = LeavePeriodValidator(WorkingDayCalculator.for_session(db))

        if decision.action == ReviewAction.approved:
            start, end = resolve_period(
                decision.start_date,
                decision.end_date,
                current_start=leave_req.start_date,
                current_end=leave_req.end_date,
            )
            duration = await validator.validate_or_raise(start, end)
            requested_paid = (
                decision.paid_leave_days
                if decision.paid_leave_days is not None
                else leave_req.paid_leave_days
            )
            paid, unpaid = allocate_paid_days(duration.working_days, requested_paid)

            leave_req.start_date = start
            leave_req.end_date = end
            leave_req.paid_leave_days = paid
            leave_req.unpaid_leave_days = unpaid
        else:
            calculator = WorkingDayCalculator.for_session(db)
            duration = await calculator.compute(leave_req.start_date, leave_req.end_date)

        leave_req.status = next_status(stage, decision.action)
        leave_req.updated_at = utcnow()
        return duration

    @staticmethod
    async def department_head_decision(
        db: AsyncSession,
        request_id: uuid.UUID,
        decision: Decision,
        *,
        actor: Optional[Employee] = None,
        email_service: Optional[EmailService] = None,
    ) -> LeaveRequestOut:
        """First-stage review: approve to ``pending_admin`` or reject."""
        leave_req = await LeaveService._load_request(db, request_id)

        if actor is not None and actor.role != UserRole.admin:
            if actor.id not in leave_req.dept_head_id_list:
                raise ForbiddenException(
                    "You are not a department head for this leave request."
                )

        duration = await LeaveService._apply_decision(
            db, leave_req, ReviewStage.dept_head, decision,
        )
        leave_req.dept_head_id = actor.id if actor is not None else None
        leave_req.dept_head_action = decision.action
        leave_req.dept_head_comment = decision.comment
        leave_req.dept_head_action_at = utcnow()
        await db.commit()

        logger.info(
            "Leave request %s %s by department head %s",
            leave_req.id, decision.action.value, leave_req.dept_head_id,
        )
        employee = leave_req.employee
        response = LeaveService._build_response(leave_req, duration, employee)

        notifier = LeaveService._notifier(db, email_service)
        if decision.action == ReviewAction.approved:
            await notifier.dept_head_approved(leave_req, employee)
        else:
            await notifier.dept_head_rejected(leave_req, employee, decision.comment)
        return response

    @staticmethod
    async def admin_decision(
        db: AsyncSession,
        request_id: uuid.UUID,
        admin_id: uuid.UUID,
        decision: Decision,
        *,
        email_service: Optional[EmailService] = None,
    ) -> LeaveRequestOut:
        """Final review: only requests in ``pending_admin`` can be decided."""
        leave_req = await LeaveService._load_request(db, request_id)

        duration = await LeaveService._apply_decision(
            db, leave_req, ReviewStage.admin, decision,
        )
        leave_req.admin_id = admin_id
        leave_req.admin_action = decision.action
        leave_req.admin_comment = decision.comment
        leave_req.admin_action_at = utcnow()
        await db.commit()

        logger.info(
            "Leave request %s %s by admin %s",
            leave_req.id, decision.action.value, admin_id,
        )
        employee = leave_req.employee
        response = LeaveService._build_response(leave_req, duration, employee)

        await LeaveService._notifier(db, email_service).admin_decided(
            leave_req,
            employee,
            approved=decision.action == ReviewAction.approved,
            comment=decision.comment,
        )
        return response

    # ─────────────────────────────────────────────────────────────────
    # Direct edit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def update_leave_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        patch: LeaveRequestPatch,
        *,
        actor: Optional[Employee] = None,
        email_service: Optional[EmailService] = None,
    ) -> LeaveRequestOut:
        """Apply a sparse edit; status is never changed here."""
        leave_req = await LeaveService._load_request(db, request_id)
        LeaveService._ensure_can_access(leave_req, actor)
        ensure_editable(leave_req.status)
        if patch.has("paid_leave_days"):
            LeaveService._ensure_can_allocate(leave_req, actor)

        merged = merge_patch(leave_req, patch)
        calculator = WorkingDayCalculator.for_session(db)

        if merged.recompute:
            validator = LeavePeriodValidator(calculator)
            duration = await validator.validate_or_raise(merged.start_date, merged.end_date)
            paid, unpaid = allocate_paid_days(duration.working_days, merged.paid_leave_days)
        else:
            duration = await calculator.compute(merged.start_date, merged.end_date)
            paid, unpaid = leave_req.paid_leave_days, leave_req.unpaid_leave_days

        leave_req.start_date = merged.start_date
        leave_req.end_date = merged.end_date
        leave_req.leave_type = merged.leave_type
        leave_req.reason = merged.reason
        leave_req.paid_leave_days = paid
        leave_req.unpaid_leave_days = unpaid
        leave_req.updated_at = utcnow()
        await db.commit()

        logger.info("Leave request %s updated (fields: %s)", leave_req.id, sorted(patch.fields))
        employee = leave_req.employee
        response = LeaveService._build_response(leave_req, duration, employee)

        await LeaveService._notifier(db, email_service).leave_updated(leave_req, employee)
        return response

    # ─────────────────────────────────────────────────────────────────
    # Delete
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def delete_leave_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        actor: Optional[Employee] = None,
        email_service: Optional[EmailService] = None,
    ) -> LeaveDeletedOut:
        leave_req = await LeaveService._load_request(db, request_id)
        LeaveService._ensure_can_access(leave_req, actor)
        employee = leave_req.employee

        await db.delete(leave_req)
        await db.commit()
        logger.info("Leave request %s deleted", request_id)

        await LeaveService._notifier(db, email_service).leave_deleted(leave_req, employee)
        return LeaveDeletedOut(id=request_id)

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        actor: Optional[Employee] = None,
    ) -> LeaveRequestOut:
        leave_req = await LeaveService._load_request(db, request_id)
        LeaveService._ensure_can_access(leave_req, actor)
        durations = await LeaveService._durations(db, [leave_req])
        return LeaveService._build_response(
            leave_req, durations[leave_req.id], leave_req.employee,
        )

    @staticmethod
    async def list_leave_requests(
        db: AsyncSession,
        *,
        employee_ids: Optional[Sequence[uuid.UUID]] = None,
        department_ids: Optional[Sequence[uuid.UUID]] = None,
        status: Optional[LeaveStatus] = None,
        leave_type: Optional[LeaveType] = None,
        year: Optional[int] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> LeaveRequestListResponse:
        """List requests, newest start date first.

        ``employee_ids`` is an allow-list: an empty sequence matches nothing,
        ``None`` applies no employee restriction.
        """
        if employee_ids is not None and not employee_ids:
            return LeaveRequestListResponse(
                data=[],
                meta=PaginationMeta.build(page=page, page_size=page_size, total=0),
            )

        query = (
            select(LeaveRequest)
            .options(selectinload(LeaveRequest.employee))
            .order_by(LeaveRequest.start_date.desc(), LeaveRequest.created_at.desc())
        )

        if employee_ids is not None:
            query = query.where(LeaveRequest.employee_id.in_(list(employee_ids)))
        if department_ids:
            dept_employees = select(Employee.id).where(
                Employee.department_id.in_(list(department_ids))
            )
            query = query.where(LeaveRequest.employee_id.in_(dept_employees))
        if status:
            query = query.where(LeaveRequest.status == status)
        if leave_type:
            query = query.where(LeaveRequest.leave_type == leave_type)
        if year:
            window_start, window_end = year_window(year)
            query = query.where(
                LeaveRequest.start_date <= window_end,
                LeaveRequest.end_date >= window_start,
            )

        # Count
        count_q = query.with_only_columns(func.count()).order_by(None)
        total = (await db.execute(count_q)).scalar_one()

        # Paginate
        offset = (page - 1) * page_size
        result = await db.execute(query.offset(offset).limit(page_size))
        requests = result.scalars().all()

        durations = await LeaveService._durations(db, requests)
        return LeaveRequestListResponse(
            data=[
                LeaveService._build_response(r, durations[r.id], r.employee)
                for r in requests
            ],
            meta=PaginationMeta.build(page=page, page_size=page_size, total=total),
        )

    @staticmethod
    async def list_for_department_head(
        db: AsyncSession,
        head_id: uuid.UUID,
        *,
        department_ids: Optional[Sequence[uuid.UUID]] = None,
        employee_ids: Optional[Sequence[uuid.UUID]] = None,
        status: Optional[LeaveStatus] = None,
        leave_type: Optional[LeaveType] = None,
        year: Optional[int] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> LeaveRequestListResponse:
        """Requests of employees in the departments *head_id* manages."""
        managed = await LeaveService.managed_department_ids(db, head_id)
        if department_ids:
            managed = [d for d in managed if d in set(department_ids)]

        allowed: list[uuid.UUID] = []
        if managed:
            emp_query = select(Employee.id).where(Employee.department_id.in_(managed))
            if employee_ids:
                emp_query = emp_query.where(Employee.id.in_(list(employee_ids)))
            allowed = list((await db.execute(emp_query)).scalars().all())

        return await LeaveService.list_leave_requests(
            db,
            employee_ids=allowed,
            status=status,
            leave_type=leave_type,
            year=year or date.today().year,
            page=page,
            page_size=page_size,
        )

    @staticmethod
    async def preview_working_days(
        db: AsyncSession,
        start_date: str,
        end_date: str,
    ) -> WorkingDayResult:
        """Working-day breakdown for a prospective period."""
        start, end = resolve_period(start_date, end_date)
        return await WorkingDayCalculator.for_session(db).compute(start, end)
