"""Leave ORM model: LeaveRequest and its two-stage approval trail."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_leave.common.constants import LeaveStatus, LeaveType, ReviewAction
from hr_leave.database import Base, enum_values, utcnow

if TYPE_CHECKING:
    from hr_leave.core_hr.models import Employee


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.CheckConstraint("start_date <= end_date", name="ck_leave_requests_period"),
        sa.CheckConstraint(
            "paid_leave_days >= 0 AND unpaid_leave_days >= 0",
            name="ck_leave_requests_allocation",
        ),
        sa.Index("ix_leave_requests_employee_status", "employee_id", "status"),
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
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    leave_type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type", values_callable=enum_values),
        nullable=False,
    )
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status", values_callable=enum_values),
        default=LeaveStatus.pending_dept_head,
        nullable=False,
    )

    # Department-head stage; dept_head_ids holds the candidate approvers
    # captured at submission as a JSON list of UUID strings.
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

    paid_leave_days: Mapped[int] = mapped_column(sa.Integer, default=0, nullable=False)
    unpaid_leave_days: Mapped[int] = mapped_column(sa.Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, onupdate=utcnow,
    )

    # Relationships
    employee: Mapped[Employee] = relationship(
        back_populates="leave_requests", foreign_keys=[employee_id]
    )
    dept_head: Mapped[Optional[Employee]] = relationship(
        foreign_keys=[dept_head_id]
    )
    admin: Mapped[Optional[Employee]] = relationship(
        foreign_keys=[admin_id]
    )

    @property
    def dept_head_id_list(self) -> list[uuid.UUID]:
        return [uuid.UUID(str(value)) for value in (self.dept_head_ids or [])]
