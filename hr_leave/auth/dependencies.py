"""Caller identity and RBAC enforcement.

Authentication happens upstream (API gateway); it forwards the verified
employee id in the ``X-Employee-Id`` header. These dependencies resolve that
id to an active Employee and enforce role membership.
"""

from __future__ import annotations

import uuid
from typing import Callable

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hr_leave.common.constants import UserRole
from hr_leave.common.exceptions import ForbiddenException
from hr_leave.core_hr.models import Employee
from hr_leave.database import get_db

EMPLOYEE_ID_HEADER = "X-Employee-Id"

# Role hierarchy: each role implicitly includes lower roles
_ROLE_HIERARCHY: dict[UserRole, set[UserRole]] = {
    UserRole.admin: {UserRole.admin, UserRole.department_head, UserRole.employee},
    UserRole.department_head: {UserRole.department_head, UserRole.employee},
    UserRole.employee: {UserRole.employee},
}


def effective_roles(role: UserRole) -> set[UserRole]:
    return _ROLE_HIERARCHY.get(role, {role})


def _extract_employee_id(request: Request) -> uuid.UUID:
    raw = request.headers.get(EMPLOYEE_ID_HEADER)
    if not raw:
        raise HTTPException(status_code=401, detail=f"Missing {EMPLOYEE_ID_HEADER} header.")
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Invalid {EMPLOYEE_ID_HEADER} header.")


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Employee:
    """Return the active Employee identified by the gateway header."""
    employee_id = _extract_employee_id(request)

    result = await db.execute(
        select(Employee).where(Employee.id == employee_id, Employee.is_active.is_(True))
    )
    employee = result.scalars().first()
    if employee is None:
        raise HTTPException(status_code=401, detail="User account is inactive or not found.")

    request.state.user_role = employee.role
    return employee


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: UserRole) -> Callable:
    """Return a FastAPI dependency that enforces role membership.

    Respects hierarchy — e.g. an Admin can use department-head endpoints.
    """

    async def _check(
        employee: Employee = Depends(get_current_user),
    ) -> Employee:
        if not effective_roles(employee.role).intersection(allowed_roles):
            raise ForbiddenException(
                detail=(
                    f"Role '{employee.role.value}' is not permitted. "
                    f"Required: {[r.value for r in allowed_roles]}."
                ),
            )
        return employee

    return _check
