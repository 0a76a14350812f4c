"""Notification service — in-app fan-out and leave-workflow dispatchers.

Every dispatcher here is best-effort: the leave transition it reports on has
already been committed, so storage or SMTP failures are logged and swallowed
instead of propagating to the caller.
"""

from __future__ import annotations

import functools
import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import ClassVar, Iterable, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_leave.common.constants import (
    DISPLAY_DATE_FORMAT,
    LeaveStatus,
    NotificationType,
    UserRole,
)
from hr_leave.config import settings
from hr_leave.core_hr.models import Employee
from hr_leave.notifications.email import EmailService
from hr_leave.notifications.models import Notification

logger = logging.getLogger(__name__)

LEAVE_ENTITY = "leave_request"
SHORT_LEAVE_ENTITY = "short_leave_request"


# ── Core service ────────────────────────────────────────────────────


class NotificationService:
    """Async notification operations."""

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        *,
        recipient_id: uuid.UUID,
        type: NotificationType = NotificationType.info,
        title: str,
        message: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
    ) -> Notification:
        """Create a new notification and flush to DB."""
        notification = Notification(
            recipient_id=recipient_id,
            type=type,
            title=title,
            message=message,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.add(notification)
        await db.flush()
        return notification

    @staticmethod
    async def notify_users(
        db: AsyncSession,
        recipient_ids: Iterable[uuid.UUID],
        type: NotificationType,
        title: str,
        message: str,
        *,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
    ) -> int:
        """Store one notification per distinct recipient and commit.

        Returns the number stored; 0 when there was nobody to notify or the
        write failed (the failure is logged and rolled back).
        """
        recipients = list(dict.fromkeys(r for r in recipient_ids if r is not None))
        if not recipients:
            return 0

        try:
            for recipient_id in recipients:
                await NotificationService.create_notification(
                    db,
                    recipient_id=recipient_id,
                    type=type,
                    title=title,
                    message=message,
                    entity_type=entity_type,
                    entity_id=entity_id,
                )
            await db.commit()
        except SQLAlchemyError:
            logger.exception(
                "Failed to store notification '%s' for %d recipient(s)",
                title, len(recipients),
            )
            await db.rollback()
            return 0

        return len(recipients)


async def send_email_safely(
    email_service: EmailService,
    addresses: Sequence[str],
    subject: str,
    body: str,
) -> bool:
    """Send mail through *email_service*; log and return False on failure."""
    try:
        return await email_service.send_email(list(addresses), subject, body)
    except (OSError, ValueError):
        logger.warning("Email '%s' to %s failed", subject, list(addresses), exc_info=True)
        return False


# ── Leave workflow dispatchers ──────────────────────────────────────


def _fmt(day: date) -> str:
    return day.strftime(DISPLAY_DATE_FORMAT)


@dataclass(frozen=True)
class _LeaveFacts:
    """Plain snapshot of the request taken before any notification I/O.

    A rollback inside ``notify_users`` expires ORM instances; everything the
    messages need is copied here first.
    """

    entity_type: ClassVar[str] = LEAVE_ENTITY

    id: uuid.UUID
    employee_id: uuid.UUID
    employee_name: str
    employee_email: Optional[str]
    leave_type: str
    start_date: date
    end_date: date
    paid_leave_days: int
    unpaid_leave_days: int
    reason: Optional[str]
    dept_head_ids: tuple[uuid.UUID, ...]

    @property
    def period(self) -> str:
        return f"{_fmt(self.start_date)} to {_fmt(self.end_date)}"


def _snapshot(leave_request, employee: Employee) -> _LeaveFacts:
    return _LeaveFacts(
        id=leave_request.id,
        employee_id=leave_request.employee_id,
        employee_name=employee.full_name,
        employee_email=employee.email,
        leave_type=leave_request.leave_type.value,
        start_date=leave_request.start_date,
        end_date=leave_request.end_date,
        paid_leave_days=leave_request.paid_leave_days,
        unpaid_leave_days=leave_request.unpaid_leave_days,
        reason=leave_request.reason,
        dept_head_ids=tuple(leave_request.dept_head_id_list),
    )


@dataclass(frozen=True)
class _ShortLeaveFacts:
    entity_type: ClassVar[str] = SHORT_LEAVE_ENTITY

    id: uuid.UUID
    employee_id: uuid.UUID
    employee_name: str
    employee_email: Optional[str]
    leave_type: str
    leave_date: date
    start_time: str
    end_time: str
    duration_hours: float
    reason: Optional[str]
    dept_head_ids: tuple[uuid.UUID, ...]

    @property
    def slot(self) -> str:
        return f"{_fmt(self.leave_date)} from {self.start_time} to {self.end_time}"


def _short_snapshot(short_leave, employee: Employee) -> _ShortLeaveFacts:
    return _ShortLeaveFacts(
        id=short_leave.id,
        employee_id=short_leave.employee_id,
        employee_name=employee.full_name,
        employee_email=employee.email,
        leave_type=short_leave.leave_type.value,
        leave_date=short_leave.leave_date,
        start_time=short_leave.start_time,
        end_time=short_leave.end_time,
        duration_hours=short_leave.duration_hours,
        reason=short_leave.reason,
        dept_head_ids=tuple(short_leave.dept_head_id_list),
    )


def _best_effort(method):
    """Log and swallow lookup failures inside a dispatcher method."""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            await method(self, *args, **kwargs)
        except SQLAlchemyError:
            logger.exception("Leave notification step '%s' failed", method.__name__)
            await self._db.rollback()

    return wrapper


class LeaveNotifier:
    """Fans leave-workflow events out to in-app notifications and email."""

    def __init__(self, db: AsyncSession, email_service: EmailService) -> None:
        self._db = db
        self._email = email_service

    # ── Recipient lookups ───────────────────────────────────────────

    async def _admins(self) -> list[tuple[uuid.UUID, str]]:
        result = await self._db.execute(
            select(Employee.id, Employee.email).where(
                Employee.role == UserRole.admin,
                Employee.is_active.is_(True),
            )
        )
        return [(row.id, row.email) for row in result.all()]

    async def _emails_for(self, employee_ids: Sequence[uuid.UUID]) -> list[str]:
        if not employee_ids:
            return []
        result = await self._db.execute(
            select(Employee.email).where(
                Employee.id.in_(list(employee_ids)),
                Employee.is_active.is_(True),
            )
        )
        return [email for email in result.scalars().all() if email]

    async def _notify(
        self,
        recipient_ids: Iterable[uuid.UUID],
        type: NotificationType,
        title: str,
        message: str,
        facts: Union[_LeaveFacts, _ShortLeaveFacts],
    ) -> int:
        return await NotificationService.notify_users(
            self._db,
            recipient_ids,
            type,
            title,
            message,
            entity_type=facts.entity_type,
            entity_id=facts.id,
        )

    def _details(self, facts: _LeaveFacts) -> str:
        return (
            f"Employee: {facts.employee_name}\n"
            f"Leave type: {facts.leave_type}\n"
            f"Period: {facts.period}\n"
            f"Paid days: {facts.paid_leave_days}\n"
            f"Unpaid days: {facts.unpaid_leave_days}\n"
            f"Reason: {facts.reason or '-'}\n"
        )

    def _signature(self) -> str:
        return f"\n{settings.COMPANY_NAME}\n{settings.COMPANY_EMAIL}\n"

    # ── Events ──────────────────────────────────────────────────────

    @_best_effort
    async def leave_submitted(self, leave_request, employee: Employee) -> None:
        """Dept heads get an in-app notice; dept heads and admins get mail."""
        facts = _snapshot(leave_request, employee)
        admins = await self._admins()
        head_emails = await self._emails_for(facts.dept_head_ids)

        await self._notify(
            facts.dept_head_ids,
            NotificationType.action_required,
            "New Leave Request",
            f"{facts.employee_name} requested {facts.leave_type} leave "
            f"from {facts.period}.",
            facts,
        )
        await send_email_safely(
            self._email,
            [email for _, email in admins] + head_emails,
            f"Leave Request from {facts.employee_name}",
            "A new leave request needs review.\n\n"
            + self._details(facts)
            + self._signature(),
        )

    @_best_effort
    async def dept_head_approved(self, leave_request, employee: Employee) -> None:
        """Admins are asked for the final decision; the employee is informed."""
        facts = _snapshot(leave_request, employee)
        admins = await self._admins()

        await self._notify(
            [admin_id for admin_id, _ in admins],
            NotificationType.action_required,
            "Leave Request Awaiting Admin Approval",
            f"{facts.employee_name}'s {facts.leave_type} leave from "
            f"{facts.period} was approved by the department head.",
            facts,
        )
        await send_email_safely(
            self._email,
            [email for _, email in admins],
            f"Leave Request Approved by Department Head - {facts.employee_name}",
            "A leave request was approved by the department head and now "
            "needs your decision.\n\n"
            + self._details(facts)
            + self._signature(),
        )
        await self._notify(
            [facts.employee_id],
            NotificationType.approval,
            "Leave Request Approved by Department Head",
            f"Your leave request from {facts.period} was approved by your "
            "department head and is awaiting admin approval.",
            facts,
        )

    @_best_effort
    async def dept_head_rejected(
        self,
        leave_request,
        employee: Employee,
        comment: Optional[str],
    ) -> None:
        facts = _snapshot(leave_request, employee)
        await self._notify(
            [facts.employee_id],
            NotificationType.alert,
            "Leave Request Rejected",
            f"Your leave request from {facts.period} was rejected by your "
            f"department head. Comment: {comment or '-'}",
            facts,
        )
        if facts.employee_email:
            await send_email_safely(
                self._email,
                [facts.employee_email],
                "Your Leave Request Has Been Rejected",
                f"Dear {facts.employee_name},\n\n"
                f"Your leave request from {facts.period} was rejected by your "
                "department head.\n"
                f"Comment: {comment or '-'}\n"
                + self._signature(),
            )

    @_best_effort
    async def admin_decided(
        self,
        leave_request,
        employee: Employee,
        approved: bool,
        comment: Optional[str],
    ) -> None:
        facts = _snapshot(leave_request, employee)
        outcome = "Approved" if approved else "Rejected"

        await self._notify(
            [facts.employee_id],
            NotificationType.approval if approved else NotificationType.alert,
            f"Leave Request {outcome}",
            f"Your leave request from {facts.period} was {outcome.lower()} "
            f"by the admin. Comment: {comment or '-'}",
            facts,
        )
        if facts.employee_email:
            await send_email_safely(
                self._email,
                [facts.employee_email],
                f"Your Leave Request Has Been {outcome}",
                f"Dear {facts.employee_name},\n\n"
                f"Your leave request has been {outcome.lower()}.\n\n"
                + self._details(facts)
                + f"Comment: {comment or '-'}\n"
                + self._signature(),
            )

    @_best_effort
    async def leave_updated(self, leave_request, employee: Employee) -> None:
        facts = _snapshot(leave_request, employee)
        await self._notify(
            [facts.employee_id],
            NotificationType.info,
            "Leave Request Updated",
            f"Your leave request is now {facts.period} "
            f"({facts.paid_leave_days} paid, {facts.unpaid_leave_days} unpaid).",
            facts,
        )

    @_best_effort
    async def leave_deleted(self, leave_request, employee: Employee) -> None:
        facts = _snapshot(leave_request, employee)
        await self._notify(
            [facts.employee_id],
            NotificationType.info,
            "Leave Request Deleted",
            f"Your leave request from {facts.period} has been deleted.",
            facts,
        )

    # ── Short leave events ──────────────────────────────────────────

    def _short_details(self, facts: _ShortLeaveFacts) -> str:
        return (
            f"Employee: {facts.employee_name}\n"
            f"Type: {facts.leave_type}\n"
            f"Date: {_fmt(facts.leave_date)}\n"
            f"Time: {facts.start_time} - {facts.end_time} "
            f"({facts.duration_hours:g} hours)\n"
            f"Reason: {facts.reason or '-'}\n"
        )

    @_best_effort
    async def short_leave_submitted(self, short_leave, employee: Employee) -> None:
        facts = _short_snapshot(short_leave, employee)
        admins = await self._admins()
        head_emails = await self._emails_for(facts.dept_head_ids)

        await self._notify(
            facts.dept_head_ids,
            NotificationType.action_required,
            "New Short Leave Request",
            f"{facts.employee_name} requested short leave on {facts.slot}.",
            facts,
        )
        await send_email_safely(
            self._email,
            [email for _, email in admins] + head_emails,
            f"Short Leave Request from {facts.employee_name}",
            "A new short leave request needs review.\n\n"
            + self._short_details(facts)
            + self._signature(),
        )

    @_best_effort
    async def short_leave_decided(
        self,
        short_leave,
        employee: Employee,
        *,
        reviewer: str,
        approved: bool,
        comment: Optional[str],
    ) -> None:
        """Employee learns the verdict; a head approval also asks the admins."""
        facts = _short_snapshot(short_leave, employee)
        outcome = "Approved" if approved else "Rejected"
        awaiting_admin = short_leave.status == LeaveStatus.pending_admin

        await self._notify(
            [facts.employee_id],
            NotificationType.approval if approved else NotificationType.alert,
            f"Short Leave {outcome} by {reviewer}",
            f"Your short leave on {facts.slot} was {outcome.lower()} by "
            f"{reviewer.lower()}. Comment: {comment or '-'}",
            facts,
        )
        if facts.employee_email:
            await send_email_safely(
                self._email,
                [facts.employee_email],
                f"Short Leave {outcome} by {reviewer}",
                f"Dear {facts.employee_name},\n\n"
                f"Your short leave request has been {outcome.lower()}.\n\n"
                + self._short_details(facts)
                + f"Comment: {comment or '-'}\n"
                + self._signature(),
            )

        if approved and awaiting_admin:
            admins = await self._admins()
            await self._notify(
                [admin_id for admin_id, _ in admins],
                NotificationType.action_required,
                "Short Leave Pending Admin Approval",
                f"{facts.employee_name}'s short leave on {facts.slot} was "
                "approved by the department head.",
                facts,
            )

    @_best_effort
    async def short_leave_updated(self, short_leave, employee: Employee) -> None:
        facts = _short_snapshot(short_leave, employee)
        await self._notify(
            [facts.employee_id],
            NotificationType.info,
            "Short Leave Request Updated",
            f"Your short leave is now on {facts.slot}.",
            facts,
        )
