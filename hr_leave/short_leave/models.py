"""Short-leave ORM model: a few hours off within one working day."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_leave.common.constants import LeaveStatus, ReviewAction, ShortLeaveType
from hr_leave.database import Base, enum_values, utcnow

if TYPE_CHECKING:
    from hr_leave.core_hr.models import Employee


class ShortLeaveRequest(Base):
    __tablename__ = "short_leave_requests"
    __table_args__ = (
        sa.CheckConstraint("duration_hours > 0", name="ck_short_leave_requests_duration"),
        sa.Index("ix_short_leave_requests_employee_date", "employee_id", "leave_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("departments.id", ondelete="SET NULL"),
    )
    leave_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    # "HH:MM"; for night shifts the end may be on the following morning
    start_time: Mapped[str] = mapped_column(sa.String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(sa.String(5), nullable=False)
    duration_hours: Mapped[float] = mapped_column(
        sa.Numeric(5, 2, asdecimal=False), nullable=False,
    )
    leave_type: Mapped[ShortLeaveType] = mapped_column(
        sa.Enum(ShortLeaveType, name="short_leave_type", values_callable=enum_values),
        default=ShortLeaveType.casual,
        nullable=False,
    )
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status", values_callable=enum_values),
        default=LeaveStatus.pending_dept_head,
        nullable=False,
    )

    # Department-head stage
    dept_head_ids: Mapped[list] = mapped_column(JSONB, default=list, nullable=False)
    dept_head_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id", ondelete="SET NULL"),
    )
    dept_head_action: Mapped[Optional[ReviewAction]] = mapped_column(
        sa.Enum(ReviewAction, name="review_action", values_callable=enum_values),
    )
    dept_head_comment: Mapped[Optional[str]] = mapped_column(sa.Text)
    dept_head_action_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )

    # Admin stage
    admin_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id", ondelete="SET NULL"),
    )
    admin_action: Mapped[Optional[ReviewAction]] = mapped_column(
        sa.Enum(ReviewAction, name="review_action", values_callable=enum_values),
    )
    admin_comment: Mapped[Optional[str]] = mapped_column(sa.Text)
    admin_action_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, onupdate=utcnow,
    )

    # Relationships
    employee: Mapped[Employee] = relationship(foreign_keys=[employee_id])

    @property
    def dept_head_id_list(self) -> list[uuid.UUID]:
        return [uuid.UUID(str(value)) for value in (self.dept_head_ids or [])]
