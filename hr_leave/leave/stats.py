"""Leave statistics — status / type roll-ups and per-employee usage.

Days are always working days of the part of a request that falls inside the
query window. One calendar index is loaded per window and reused for every
request in it.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hr_leave.calendar.service import (
    CalendarIndex,
    WorkingDayCalculator,
    count_working_days,
)
from hr_leave.common.constants import (
    DEFAULT_PAGE_SIZE,
    PENDING_STATUSES,
    LeaveStatus,
    LeaveType,
    UserRole,
)
from hr_leave.common.exceptions import (
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from hr_leave.common.pagination import PaginationMeta
from hr_leave.core_hr.models import Employee
from hr_leave.leave.models import LeaveRequest
from hr_leave.leave.schemas import (
    EmployeeLeaveStatsListResponse,
    EmployeeLeaveStatsOut,
    LeaveStatsOut,
    StatusBuckets,
    TypeDayCounts,
)
from hr_leave.leave.service import LeaveService
from hr_leave.leave.workflow import START_AFTER_END_MESSAGE, parse_iso_date

logger = logging.getLogger(__name__)

_STATUS_BUCKET: dict[str, str] = {
    **{status.value: "pending" for status in PENDING_STATUSES},
    LeaveStatus.approved.value: "approved",
    LeaveStatus.rejected.value: "rejected",
}
_KNOWN_TYPES = frozenset(t.value for t in LeaveType)


def _value(field: Any) -> str:
    return getattr(field, "value", field)


def status_bucket(status: Any) -> Optional[str]:
    """``pending`` / ``approved`` / ``rejected``; None for unknown statuses."""
    return _STATUS_BUCKET.get(_value(status))


def clamped_working_days(leave_request, index: CalendarIndex) -> Optional[int]:
    """Working days of the request inside the index window, None if disjoint."""
    start = max(leave_request.start_date, index.window_start)
    end = min(leave_request.end_date, index.window_end)
    if start > end:
        return None
    return count_working_days(start, end, index).working_days


# ═════════════════════════════════════════════════════════════════════
# Aggregation
# ═════════════════════════════════════════════════════════════════════


def _add(buckets: StatusBuckets, bucket_name: str, days: int) -> None:
    for name in ("total", bucket_name):
        bucket = getattr(buckets, name)
        bucket.requests += 1
        bucket.days += days


def summarize(requests: Iterable, index: CalendarIndex, *, year: int) -> LeaveStatsOut:
    """Fold *requests* into status and per-type buckets over the index window."""
    stats = LeaveStatsOut(
        year=year,
        window_start=index.window_start,
        window_end=index.window_end,
        by_type={t.value: StatusBuckets() for t in LeaveType},
    )
    for leave_request in requests:
        bucket_name = status_bucket(leave_request.status)
        if bucket_name is None:
            logger.warning(
                "Skipping leave request %s with unknown status %r",
                getattr(leave_request, "id", None), leave_request.status,
            )
            continue

        days = clamped_working_days(leave_request, index)
        if days is None:
            continue

        _add(stats, bucket_name, days)
        type_key = _value(leave_request.leave_type)
        if type_key in _KNOWN_TYPES:
            _add(stats.by_type[type_key], bucket_name, days)
    return stats


def summarize_by_employee(
    employees: Sequence[Employee],
    requests: Iterable,
    index: CalendarIndex,
) -> list[EmployeeLeaveStatsOut]:
    """Per-employee day counts; employees without requests get zeros."""
    rows: dict[uuid.UUID, EmployeeLeaveStatsOut] = {
        emp.id: EmployeeLeaveStatsOut(
            employee_id=emp.id,
            employee_name=emp.full_name,
            department_id=emp.department_id,
            by_type={t.value: TypeDayCounts() for t in LeaveType},
        )
        for emp in employees
    }

    for leave_request in requests:
        row = rows.get(leave_request.employee_id)
        if row is None:
            continue
        days = clamped_working_days(leave_request, index)
        if days is None:
            continue

        row.total_days += days
        type_key = _value(leave_request.leave_type)
        if type_key not in _KNOWN_TYPES:
            continue
        counts = row.by_type[type_key]
        counts.total += days

        bucket_name = status_bucket(leave_request.status)
        if bucket_name is None:
            logger.warning(
                "Unknown status %r for leave request %s",
                leave_request.status, getattr(leave_request, "id", None),
            )
            continue
        setattr(counts, bucket_name, getattr(counts, bucket_name) + days)

    return list(rows.values())


class LeaveStatsAggregator:
    """Loads one calendar index per window and folds requests over it."""

    def __init__(self, calculator: WorkingDayCalculator) -> None:
        self._calculator = calculator

    async def aggregate(
        self,
        requests: Sequence,
        window_start: date,
        window_end: date,
    ) -> LeaveStatsOut:
        index = await self._calculator.load_index(window_start, window_end)
        return summarize(requests, index, year=window_start.year)

    async def aggregate_by_employee(
        self,
        employees: Sequence[Employee],
        requests: Sequence,
        window_start: date,
        window_end: date,
    ) -> list[EmployeeLeaveStatsOut]:
        index = await self._calculator.load_index(window_start, window_end)
        return summarize_by_employee(employees, requests, index)


# ═════════════════════════════════════════════════════════════════════
# Visibility and window
# ═════════════════════════════════════════════════════════════════════


def resolve_window(
    year: Optional[int] = None,
    start_date: Optional[Any] = None,
    end_date: Optional[Any] = None,
) -> tuple[date, date]:
    """Query window: explicit bounds win, a missing bound falls back to its year.

    Raises ValidationException for malformed dates or start after end.
    """
    start = parse_iso_date(start_date) if start_date is not None else None
    end = parse_iso_date(end_date) if end_date is not None else None
    if start is None:
        start = date(year or (end.year if end else date.today().year), 1, 1)
    if end is None:
        end = date(year or start.year, 12, 31)
    if start > end:
        raise ValidationException({"start_date": [START_AFTER_END_MESSAGE]})
    return start, end


async def resolve_visible_employees(
    db: AsyncSession,
    viewer: Employee,
    *,
    department_ids: Optional[Iterable[uuid.UUID]] = None,
    employee_ids: Optional[Iterable[uuid.UUID]] = None,
) -> set[uuid.UUID]:
    """Employee ids *viewer* may see, optionally narrowed by the filters.

    Admins see everyone, department heads see the employees of the
    departments they manage, everybody else sees only themselves. An empty
    or missing filter does not narrow; both filters together must both match.
    """
    wanted_departments = set(department_ids or ())
    wanted_employees = set(employee_ids or ())

    if viewer.role == UserRole.admin:
        if wanted_employees:
            found = set(
                (
                    await db.execute(
                        select(Employee.id).where(Employee.id.in_(list(wanted_employees)))
                    )
                ).scalars().all()
            )
            missing = wanted_employees - found
            if missing:
                raise NotFoundException("Employee", str(sorted(missing, key=str)[0]))
        query = select(Employee.id)
        if wanted_employees:
            query = query.where(Employee.id.in_(list(wanted_employees)))
        if wanted_departments:
            query = query.where(Employee.department_id.in_(list(wanted_departments)))
        return set((await db.execute(query)).scalars().all())

    if viewer.role == UserRole.department_head:
        managed = set(await LeaveService.managed_department_ids(db, viewer.id))
        if wanted_departments:
            if not wanted_departments <= managed:
                raise ForbiddenException("You can only view departments you manage.")
            managed = wanted_departments
        if not managed:
            if wanted_employees:
                raise ForbiddenException(
                    "You can only view employees of departments you manage."
                )
            return set()

        visible = set(
            (
                await db.execute(
                    select(Employee.id).where(Employee.department_id.in_(list(managed)))
                )
            ).scalars().all()
        )
        if wanted_employees:
            if not wanted_employees <= visible:
                raise ForbiddenException(
                    "You can only view employees of departments you manage."
                )
            return wanted_employees
        return visible

    if not wanted_employees <= {viewer.id}:
        raise ForbiddenException("You can only view your own leave.")
    if not wanted_departments <= {viewer.department_id}:
        raise ForbiddenException("You can only view your own leave.")
    return {viewer.id}


# ═════════════════════════════════════════════════════════════════════
# LeaveStatsService
# ═════════════════════════════════════════════════════════════════════


class LeaveStatsService:
    """Async statistics queries scoped to what the viewer may see."""

    @staticmethod
    async def _visible(
        db: AsyncSession,
        viewer: Employee,
        *,
        employee_ids: Optional[Sequence[uuid.UUID]] = None,
        department_ids: Optional[Sequence[uuid.UUID]] = None,
        department_head_id: Optional[uuid.UUID] = None,
    ) -> set[uuid.UUID]:
        if department_head_id is not None:
            headed = set(await LeaveService.managed_department_ids(db, department_head_id))
            scoped = headed & set(department_ids) if department_ids else headed
            if not scoped:
                return set()
            department_ids = list(scoped)
        return await resolve_visible_employees(
            db, viewer, department_ids=department_ids, employee_ids=employee_ids,
        )

    @staticmethod
    async def _requests_in_window(
        db: AsyncSession,
        employee_ids: Iterable[uuid.UUID],
        window_start: date,
        window_end: date,
        *,
        status: Optional[LeaveStatus] = None,
        leave_type: Optional[LeaveType] = None,
    ) -> Sequence[LeaveRequest]:
        ids = list(employee_ids)
        if not ids:
            return []
        query = select(LeaveRequest).where(
            LeaveRequest.employee_id.in_(ids),
            LeaveRequest.start_date <= window_end,
            LeaveRequest.end_date >= window_start,
        )
        if status:
            query = query.where(LeaveRequest.status == status)
        if leave_type:
            query = query.where(LeaveRequest.leave_type == leave_type)
        return (await db.execute(query)).scalars().all()

    @staticmethod
    async def get_leave_stats(
        db: AsyncSession,
        viewer: Employee,
        *,
        year: Optional[int] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        employee_ids: Optional[Sequence[uuid.UUID]] = None,
        department_ids: Optional[Sequence[uuid.UUID]] = None,
        department_head_id: Optional[uuid.UUID] = None,
        status: Optional[LeaveStatus] = None,
        leave_type: Optional[LeaveType] = None,
    ) -> LeaveStatsOut:
        window_start, window_end = resolve_window(year, start_date, end_date)

        visible = await LeaveStatsService._visible(
            db, viewer,
            employee_ids=employee_ids,
            department_ids=department_ids,
            department_head_id=department_head_id,
        )
        requests = await LeaveStatsService._requests_in_window(
            db, visible, window_start, window_end, status=status, leave_type=leave_type,
        )
        aggregator = LeaveStatsAggregator(WorkingDayCalculator.for_session(db))
        return await aggregator.aggregate(requests, window_start, window_end)

    @staticmethod
    async def get_employee_leave_stats(
        db: AsyncSession,
        viewer: Employee,
        *,
        year: Optional[int] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        employee_ids: Optional[Sequence[uuid.UUID]] = None,
        department_ids: Optional[Sequence[uuid.UUID]] = None,
        department_head_id: Optional[uuid.UUID] = None,
        role: Optional[UserRole] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> EmployeeLeaveStatsListResponse:
        """Per-employee usage for every visible employee, paginated by employee."""
        window_start, window_end = resolve_window(year, start_date, end_date)

        visible = await LeaveStatsService._visible(
            db, viewer,
            employee_ids=employee_ids,
            department_ids=department_ids,
            department_head_id=department_head_id,
        )
        if not visible:
            return EmployeeLeaveStatsListResponse(
                year=window_start.year,
                window_start=window_start,
                window_end=window_end,
                data=[],
                meta=PaginationMeta.build(page=page, page_size=page_size, total=0),
            )

        emp_query = select(Employee).where(Employee.id.in_(list(visible)))
        if role is not None:
            emp_query = emp_query.where(Employee.role == role)

        count_q = emp_query.with_only_columns(func.count()).order_by(None)
        total = (await db.execute(count_q)).scalar_one()

        employees = (
            await db.execute(
                emp_query.order_by(Employee.first_name, Employee.last_name, Employee.id)
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
        ).scalars().all()

        requests = await LeaveStatsService._requests_in_window(
            db, [emp.id for emp in employees], window_start, window_end,
        )
        aggregator = LeaveStatsAggregator(WorkingDayCalculator.for_session(db))
        rows = await aggregator.aggregate_by_employee(
            employees, requests, window_start, window_end,
        )
        return EmployeeLeaveStatsListResponse(
            year=window_start.year,
            window_start=window_start,
            window_end=window_end,
            data=rows,
            meta=PaginationMeta.build(page=page, page_size=page_size, total=total),
        )
