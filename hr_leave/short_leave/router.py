"""Short-leave router — submit, two-stage review, edit, delete and listing."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hr_leave.auth.dependencies import get_current_user, require_role
from hr_leave.common.constants import LeaveStatus, UserRole
from hr_leave.common.exceptions import ForbiddenException, ValidationException
from hr_leave.common.pagination import PaginationParams
from hr_leave.common.rate_limit import SUBMIT_LIMIT, limiter
from hr_leave.core_hr.models import Employee
from hr_leave.database import get_db
from hr_leave.leave.stats import resolve_visible_employees
from hr_leave.leave.workflow import START_AFTER_END_MESSAGE, parse_iso_date
from hr_leave.notifications.email import EmailService, get_email_service
from hr_leave.short_leave.schemas import (
    ShortLeaveCreate,
    ShortLeaveDecisionRequest,
    ShortLeaveDeletedOut,
    ShortLeaveListResponse,
    ShortLeaveOut,
    ShortLeaveUpdate,
)
from hr_leave.short_leave.service import ShortLeaveService

router = APIRouter(prefix="", tags=["short-leave"])


# ── POST /request ───────────────────────────────────────────────────

@router.post("/request", response_model=ShortLeaveOut, status_code=201)
@limiter.limit(SUBMIT_LIMIT)
async def submit_short_leave(
    request: Request,
    body: ShortLeaveCreate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """Request a few hours off on one working day, inside shift hours."""
    target_id = body.employee_id or employee.id
    if target_id != employee.id and employee.role != UserRole.admin:
        raise ForbiddenException("You can only request short leave for yourself.")

    return await ShortLeaveService.submit_short_leave(
        db,
        employee_id=target_id,
        leave_date=body.leave_date,
        start_time=body.start_time,
        end_time=body.end_time,
        leave_type=body.leave_type,
        reason=body.reason,
        department_id=body.department_id,
        email_service=email_service,
    )


# ── PATCH /dept-head-action/{id} ────────────────────────────────────

@router.patch("/dept-head-action/{request_id}", response_model=ShortLeaveOut)
async def department_head_action(
    request_id: uuid.UUID,
    body: ShortLeaveDecisionRequest,
    employee: Employee = Depends(require_role(UserRole.department_head)),
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    return await ShortLeaveService.department_head_decision(
        db, request_id, body, actor=employee, email_service=email_service,
    )


# ── PATCH /admin-action/{id} ────────────────────────────────────────

@router.patch("/admin-action/{request_id}", response_model=ShortLeaveOut)
async def admin_action(
    request_id: uuid.UUID,
    body: ShortLeaveDecisionRequest,
    employee: Employee = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    return await ShortLeaveService.admin_decision(
        db, request_id, employee.id, body, email_service=email_service,
    )


# ── GET / ───────────────────────────────────────────────────────────

@router.get("/", response_model=ShortLeaveListResponse)
async def list_short_leaves(
    employee_ids: Optional[list[uuid.UUID]] = Query(None, alias="employee_id"),
    department_ids: Optional[list[uuid.UUID]] = Query(None, alias="department_id"),
    statuses: Optional[list[LeaveStatus]] = Query(None, alias="status"),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Short leaves visible to the caller, newest date first.

    ``employee_id``, ``department_id`` and ``status`` may be repeated.
    """
    start = parse_iso_date(start_date) if start_date is not None else None
    end = parse_iso_date(end_date) if end_date is not None else None
    if start is not None and end is not None and start > end:
        raise ValidationException({"start_date": [START_AFTER_END_MESSAGE]})

    visible = await resolve_visible_employees(
        db, employee, department_ids=department_ids, employee_ids=employee_ids,
    )
    return await ShortLeaveService.list_short_leaves(
        db,
        employee_ids=list(visible),
        statuses=statuses,
        start_date=start,
        end_date=end,
        page=pagination.page,
        page_size=pagination.page_size,
    )


# ── GET /{id} ───────────────────────────────────────────────────────

@router.get("/{request_id}", response_model=ShortLeaveOut)
async def get_short_leave(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await ShortLeaveService.get_short_leave(db, request_id, actor=employee)


# ── PUT /{id} ───────────────────────────────────────────────────────

@router.put("/{request_id}", response_model=ShortLeaveOut)
async def update_short_leave(
    request_id: uuid.UUID,
    body: ShortLeaveUpdate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """Move the slot or change type and reason of a short leave under review."""
    return await ShortLeaveService.update_short_leave(
        db, request_id, body, actor=employee, email_service=email_service,
    )


# ── DELETE /{id} ────────────────────────────────────────────────────

@router.delete("/{request_id}", response_model=ShortLeaveDeletedOut)
async def delete_short_leave(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await ShortLeaveService.delete_short_leave(db, request_id, actor=employee)
