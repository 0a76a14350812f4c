"""Calendar router — working-day preview, exception days, weekend sync."""


from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hr_leave.auth.dependencies import get_current_user, require_role
from hr_leave.calendar.schemas import (
    CalendarEventOut,
    WeekendSyncOut,
    WeekendSyncRequest,
    WorkingDayResultOut,
)
from hr_leave.calendar.service import list_exception_days, sync_weekend_events
from hr_leave.common.constants import UserRole
from hr_leave.common.exceptions import ValidationException
from hr_leave.config import settings
from hr_leave.core_hr.models import Employee
from hr_leave.database import get_db
from hr_leave.leave.service import LeaveService

router = APIRouter(prefix="", tags=["calendar"])


# ── GET /working-days ───────────────────────────────────────────────

@router.get("/working-days", response_model=WorkingDayResultOut)
async def working_days(
    start_date: str = Query(..., description="ISO date, inclusive"),
    end_date: str = Query(..., description="ISO date, inclusive"),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Total, working and excluded days of a prospective leave period."""
    return await LeaveService.preview_working_days(db, start_date, end_date)


# ── GET /exceptions ─────────────────────────────────────────────────

@router.get("/exceptions", response_model=list[CalendarEventOut])
async def exception_days(
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Holidays and weekends in the range (defaults to the current year)."""
    today = date.today()
    start = from_date or date(today.year, 1, 1)
    end = to_date or date(today.year, 12, 31)
    if start > end:
        raise ValidationException({"from_date": ["from_date cannot be after to_date"]})
    return await list_exception_days(db, start, end)


# ── POST /weekend-sync ──────────────────────────────────────────────

@router.post("/weekend-sync", response_model=WeekendSyncOut)
async def weekend_sync(
    body: WeekendSyncRequest,
    employee: Employee = Depends(require_role(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Regenerate weekend exception days from today over the horizon."""
    result = await sync_weekend_events(
        db,
        body.weekend_days if body.weekend_days is not None else settings.weekend_days_list,
        horizon_days=(
            body.horizon_days
            if body.horizon_days is not None
            else settings.WEEKEND_HORIZON_DAYS
        ),
        created_by=employee.id,
    )
    return WeekendSyncOut(created=result.created, removed=result.removed)
