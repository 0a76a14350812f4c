"""Leave router — submit, two-stage review, edit, delete, listings and stats.

All endpoints require the gateway-forwarded employee identity. Review
endpoints enforce roles; reads are scoped to what the caller may see.
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from hr_leave.auth.dependencies import get_current_user, require_role
from hr_leave.common.constants import LeaveStatus, LeaveType, UserRole
from hr_leave.common.exceptions import ForbiddenException
from hr_leave.common.pagination import PaginationParams
from hr_leave.common.rate_limit import SUBMIT_LIMIT, limiter
from hr_leave.core_hr.models import Employee
from hr_leave.database import get_db
from hr_leave.leave.schemas import (
    DecisionRequest,
    EmployeeLeaveStatsListResponse,
    LeaveDeletedOut,
    LeaveRequestCreate,
    LeaveRequestListResponse,
    LeaveRequestOut,
    LeaveRequestUpdate,
    LeaveStatsOut,
)
from hr_leave.leave.service import LeaveService
from hr_leave.leave.stats import LeaveStatsService, resolve_visible_employees
from hr_leave.leave.workflow import Decision, LeaveRequestPatch
from hr_leave.notifications.email import EmailService, get_email_service

router = APIRouter(prefix="", tags=["leave"])


# ── POST /request ───────────────────────────────────────────────────

@router.post("/request", response_model=LeaveRequestOut, status_code=201)
@limiter.limit(SUBMIT_LIMIT)
async def submit_leave_request(
    request: Request,
    body: LeaveRequestCreate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """Submit a leave request; it starts in ``pending_dept_head`` with full pay."""
    target_id = body.employee_id or employee.id
    if target_id != employee.id and employee.role != UserRole.admin:
        raise ForbiddenException("You can only request leave for yourself.")

    return await LeaveService.submit_leave_request(
        db,
        employee_id=target_id,
        start_date=body.start_date,
        end_date=body.end_date,
        leave_type=body.leave_type,
        reason=body.reason,
        department_id=body.department_id,
        email_service=email_service,
    )


# ── PATCH /dept-head-action/{id} ────────────────────────────────────

@router.patch("/dept-head-action/{request_id}", response_model=LeaveRequestOut)
async def department_head_action(
    request_id: uuid.UUID,
    body: DecisionRequest,
    employee: Employee = Depends(require_role(UserRole.department_head)),
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """Approve (to ``pending_admin``) or reject, optionally revising period and pay."""
    return await LeaveService.department_head_decision(
        db,
        request_id,
        Decision.from_payload(body),
        actor=employee,
        email_service=email_service,
    )


# ── PATCH /admin-action/{id} ────────────────────────────────────────

@router.patch("/admin-action/{request_id}", response_model=LeaveRequestOut)
async def admin_action(
    request_id: uuid.UUID,
    body: DecisionRequest,
    employee: Employee = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """Final decision on a request awaiting admin approval."""
    return await LeaveService.admin_decision(
        db,
        request_id,
        employee.id,
        Decision.from_payload(body),
        email_service=email_service,
    )


# ── GET /stats ──────────────────────────────────────────────────────

@router.get("/stats", response_model=LeaveStatsOut)
async def leave_stats(
    year: Optional[int] = Query(None, ge=1970, le=9999),
    start_date: Optional[str] = Query(None, description="ISO date; overrides the year start"),
    end_date: Optional[str] = Query(None, description="ISO date; overrides the year end"),
    employee_ids: Optional[list[uuid.UUID]] = Query(None, alias="employee_id"),
    department_ids: Optional[list[uuid.UUID]] = Query(None, alias="department_id"),
    department_head_id: Optional[uuid.UUID] = Query(None),
    status: Optional[LeaveStatus] = Query(None),
    leave_type: Optional[LeaveType] = Query(None),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Request counts and working days per status and leave type for a window.

    ``employee_id`` and ``department_id`` may be repeated.
    """
    return await LeaveStatsService.get_leave_stats(
        db,
        employee,
        year=year,
        start_date=start_date,
        end_date=end_date,
        employee_ids=employee_ids,
        department_ids=department_ids,
        department_head_id=department_head_id,
        status=status,
        leave_type=leave_type,
    )


# ── GET /admin-stats ────────────────────────────────────────────────

@router.get("/admin-stats", response_model=EmployeeLeaveStatsListResponse)
async def employee_leave_stats(
    year: Optional[int] = Query(None, ge=1970, le=9999),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    employee_ids: Optional[list[uuid.UUID]] = Query(None, alias="employee_id"),
    department_ids: Optional[list[uuid.UUID]] = Query(None, alias="department_id"),
    department_head_id: Optional[uuid.UUID] = Query(None),
    role: Optional[UserRole] = Query(None),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(require_role(UserRole.department_head)),
    db: AsyncSession = Depends(get_db),
):
    """Per-employee leave usage for every employee the caller can see."""
    return await LeaveStatsService.get_employee_leave_stats(
        db,
        employee,
        year=year,
        start_date=start_date,
        end_date=end_date,
        employee_ids=employee_ids,
        department_ids=department_ids,
        department_head_id=department_head_id,
        role=role,
        page=pagination.page,
        page_size=pagination.page_size,
    )


# ── GET /department-head/leaves ─────────────────────────────────────

@router.get("/department-head/leaves", response_model=LeaveRequestListResponse)
async def department_head_leaves(
    department_ids: Optional[list[uuid.UUID]] = Query(None, alias="department_id"),
    employee_ids: Optional[list[uuid.UUID]] = Query(None, alias="employee_id"),
    status: Optional[LeaveStatus] = Query(None),
    leave_type: Optional[LeaveType] = Query(None),
    year: Optional[int] = Query(None, ge=1970, le=9999),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(require_role(UserRole.department_head)),
    db: AsyncSession = Depends(get_db),
):
    """Requests from employees of the departments the caller manages."""
    return await LeaveService.list_for_department_head(
        db,
        employee.id,
        department_ids=department_ids,
        employee_ids=employee_ids,
        status=status,
        leave_type=leave_type,
        year=year,
        page=pagination.page,
        page_size=pagination.page_size,
    )


# ── GET /user/{employee_id} ─────────────────────────────────────────

@router.get("/user/{employee_id}", response_model=LeaveRequestListResponse)
async def leaves_by_user(
    employee_id: uuid.UUID,
    status: Optional[LeaveStatus] = Query(None),
    leave_type: Optional[LeaveType] = Query(None),
    year: Optional[int] = Query(None, ge=1970, le=9999),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Leave requests of one employee."""
    visible = await resolve_visible_employees(db, employee, employee_ids=[employee_id])
    return await LeaveService.list_leave_requests(
        db,
        employee_ids=list(visible),
        status=status,
        leave_type=leave_type,
        year=year,
        page=pagination.page,
        page_size=pagination.page_size,
    )


# ── GET / ───────────────────────────────────────────────────────────

@router.get("/", response_model=LeaveRequestListResponse)
async def list_leaves(
    employee_ids: Optional[list[uuid.UUID]] = Query(None, alias="employee_id"),
    department_ids: Optional[list[uuid.UUID]] = Query(None, alias="department_id"),
    status: Optional[LeaveStatus] = Query(None),
    leave_type: Optional[LeaveType] = Query(None),
    year: Optional[int] = Query(None, ge=1970, le=9999),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """All leave requests visible to the caller, newest first."""
    visible = await resolve_visible_employees(
        db, employee, department_ids=department_ids, employee_ids=employee_ids,
    )
    return await LeaveService.list_leave_requests(
        db,
        employee_ids=list(visible),
        status=status,
        leave_type=leave_type,
        year=year,
        page=pagination.page,
        page_size=pagination.page_size,
    )


# ── GET /{id} ───────────────────────────────────────────────────────

@router.get("/{request_id}", response_model=LeaveRequestOut)
async def get_leave(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave_request(db, request_id, actor=employee)


# ── PUT /{id} ───────────────────────────────────────────────────────

@router.put("/{request_id}", response_model=LeaveRequestOut)
async def update_leave(
    request_id: uuid.UUID,
    body: LeaveRequestUpdate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """Edit dates, type, reason or paid days of a request still under review."""
    return await LeaveService.update_leave_request(
        db,
        request_id,
        LeaveRequestPatch.from_update(body),
        actor=employee,
        email_service=email_service,
    )


# ── DELETE /{id} ────────────────────────────────────────────────────

@router.delete("/{request_id}", response_model=LeaveDeletedOut)
async def delete_leave(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    return await LeaveService.delete_leave_request(
        db, request_id, actor=employee, email_service=email_service,
    )
