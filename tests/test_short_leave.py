"""Short leave tests — shift-window timing, the two-stage review, edits and
the HTTP surface.

2024-01-06 / 2024-01-07 are a Saturday and Sunday; weekends only count when
seeded as calendar rows.
"""

from __future__ import annotations

import uuid
from datetime import date

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hr_leave.common.constants import (
    EventType,
    LeaveStatus,
    ShiftType,
    ShortLeaveType,
)
from hr_leave.common.exceptions import (
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from hr_leave.notifications.models import Notification
from hr_leave.short_leave.models import ShortLeaveRequest
from hr_leave.short_leave.schemas import ShortLeaveDecisionRequest, ShortLeaveUpdate
from hr_leave.short_leave.service import ShortLeaveService
from hr_leave.short_leave.timing import (
    END_BEFORE_START_MESSAGE,
    INVALID_TIME_MESSAGE,
    ShiftWindow,
    parse_clock,
    parse_short_leave_type,
)
from tests.conftest import (
    RecordingEmailService,
    _seed_employee,
    _seed_exception_day,
    _seed_org,
    auth_headers,
)

SHORT_LEAVE = "/api/v1/short-leave"

DAY_SHIFT = ShiftWindow("day shift", 9 * 60, 18 * 60)
NIGHT_SHIFT = ShiftWindow("night shift", 21 * 60, 6 * 60)


# ═════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════


async def _submit(
    db: AsyncSession,
    employee,
    outbox: RecordingEmailService,
    *,
    day: str = "2024-01-03",
    start: str = "14:00",
    end: str = "16:30",
    leave_type: str | None = None,
):
    return await ShortLeaveService.submit_short_leave(
        db,
        employee_id=employee.id,
        leave_date=day,
        start_time=start,
        end_time=end,
        leave_type=leave_type,
        reason="Dentist",
        email_service=outbox,
    )


def _decision(action: str = "approved", **revision) -> ShortLeaveDecisionRequest:
    return ShortLeaveDecisionRequest(action=action, **revision)


async def _titles_for(db: AsyncSession, recipient_id: uuid.UUID) -> list[str]:
    result = await db.execute(
        select(Notification.title).where(Notification.recipient_id == recipient_id)
    )
    return list(result.scalars().all())


async def _fresh(db: AsyncSession, request_id: uuid.UUID) -> ShortLeaveRequest:
    result = await db.execute(
        select(ShortLeaveRequest)
        .where(ShortLeaveRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


# ═════════════════════════════════════════════════════════════════════
# 1. Timing rules
# ═════════════════════════════════════════════════════════════════════


class TestTiming:

    @pytest.mark.parametrize("raw", ["9:00", "24:00", "12:60", "noon", "", None])
    def test_malformed_clock_rejected(self, raw):
        with pytest.raises(ValidationException) as exc_info:
            parse_clock(raw)

        assert exc_info.value.detail == INVALID_TIME_MESSAGE

    def test_day_shift_duration(self):
        span = DAY_SHIFT.measure("14:00", "16:30")

        assert (span.start_time, span.end_time, span.duration_hours) == ("14:00", "16:30", 2.5)

    def test_duration_rounded_to_two_decimals(self):
        assert DAY_SHIFT.measure("09:00", "09:20").duration_hours == 0.33

    def test_end_before_start(self):
        with pytest.raises(ValidationException) as exc_info:
            DAY_SHIFT.measure("15:00", "14:00")

        assert exc_info.value.detail == END_BEFORE_START_MESSAGE

    def test_outside_day_shift(self):
        with pytest.raises(ValidationException) as exc_info:
            DAY_SHIFT.measure("08:00", "10:00")

        assert exc_info.value.detail == (
            "Short leave times must be within your day shift working hours (09:00 - 18:00)"
        )

    def test_night_shift_crosses_midnight(self):
        span = NIGHT_SHIFT.measure("23:00", "01:30")

        assert NIGHT_SHIFT.overnight is True
        assert span.duration_hours == 2.5

    def test_night_shift_bounds(self):
        with pytest.raises(ValidationException):
            NIGHT_SHIFT.measure("20:00", "22:00")
        with pytest.raises(ValidationException) as exc_info:
            NIGHT_SHIFT.measure("02:00", "01:00")

        assert exc_info.value.detail == END_BEFORE_START_MESSAGE

    def test_type_defaults_to_casual(self):
        assert parse_short_leave_type(None) == ShortLeaveType.casual
        assert parse_short_leave_type(" Sick ") == ShortLeaveType.sick
        with pytest.raises(ValidationException):
            parse_short_leave_type("vacation")


# ═════════════════════════════════════════════════════════════════════
# 2. Submit
# ═════════════════════════════════════════════════════════════════════


class TestSubmit:

    async def test_submit_happy_path(self, db: AsyncSession, outbox):
        org = await _seed_org(db)

        result = await _submit(db, org["worker"], outbox)

        assert result.status == LeaveStatus.pending_dept_head
        assert result.leave_type == ShortLeaveType.casual
        assert result.leave_date == date(2024, 1, 3)
        assert result.duration_hours == 2.5
        assert result.dept_head_ids == [org["head"].id]
        assert result.employee_name == "Wes Worker"

    async def test_submit_notifies_heads_and_emails_reviewers(self, db: AsyncSession, outbox):
        org = await _seed_org(db)

        await _submit(db, org["worker"], outbox)

        assert await _titles_for(db, org["head"].id) == ["New Short Leave Request"]
        assert outbox.subjects() == ["Short Leave Request from Wes Worker"]
        recipients, _, body = outbox.sent[0]
        assert set(recipients) == {org["admin"].email, org["head"].email}
        assert "14:00 - 16:30 (2.5 hours)" in body

    async def test_holiday_rejected(self, db: AsyncSession, outbox):
        org = await _seed_org(db)
        await _seed_exception_day(db, date(2024, 1, 3))
        await db.commit()

        with pytest.raises(ValidationException) as exc_info:
            await _submit(db, org["worker"], outbox)

        assert exc_info.value.detail == (
            "Cannot apply for short leave on holiday. "
            "Short leave requests are only allowed on working days."
        )
        assert (await db.execute(select(ShortLeaveRequest))).scalars().all() == []

    async def test_weekend_rejected(self, db: AsyncSession, outbox):
        org = await _seed_org(db)
        await _seed_exception_day(db, date(2024, 1, 6), date(2024, 1, 7), kind=EventType.weekend)
        await db.commit()

        with pytest.raises(ValidationException) as exc_info:
            await _submit(db, org["worker"], outbox, day="2024-01-07")

        assert "short leave on weekend" in exc_info.value.detail

    async def test_invalid_date(self, db: AsyncSession, outbox):
        org = await _seed_org(db)

        with pytest.raises(ValidationException) as exc_info:
            await _submit(db, org["worker"], outbox, day="2024-02-30")

        assert exc_info.value.detail == "Invalid date"

    async def test_times_outside_shift(self, db: AsyncSession, outbox):
        org = await _seed_org(db)

        with pytest.raises(ValidationException) as exc_info:
            await _submit(db, org["worker"], outbox, start="17:00", end="19:00")

        assert "day shift working hours" in exc_info.value.detail

    async def test_night_shift_employee(self, db: AsyncSession, outbox):
        org = await _seed_org(db)
        nurse = await _seed_employee(
            db, first_name="Nia", department_id=org["dept"].id, shift=ShiftType.night,
        )
        await db.commit()

        result = await _submit(db, nurse, outbox, start="23:00", end="01:00", leave_type="sick")

        assert result.duration_hours == 2.0
        assert result.leave_type == ShortLeaveType.sick

    async def test_unknown_employee(self, db: AsyncSession, outbox):
        with pytest.raises(NotFoundException):
            await ShortLeaveService.submit_short_leave(
                db,
                employee_id=uuid.uuid4(),
                leave_date="2024-01-03",
                start_time="10:00",
                end_time="11:00",
                email_service=outbox,
            )


# ═════════════════════════════════════════════════════════════════════
# 3. Review
# ═════════════════════════════════════════════════════════════════════


class TestReview:

    async def test_department_head_approval(self, db: AsyncSession, outbox):
        org = await _seed_org(db)
        submitted = await _submit(db, org["worker"], outbox)

        result = await ShortLeaveService.department_head_decision(
            db, submitted.id, _decision(comment="ok"), actor=org["head"], email_service=outbox,
        )

        assert result.status == LeaveStatus.pending_admin
        assert result.dept_head_id == org["head"].id
        assert result.dept_head_comment == "ok"
        assert "Short Leave Approved by Department Head" in await _titles_for(
            db, org["worker"].id,
        )
        assert await _titles_for(db, org["admin"].id) == ["Short Leave Pending Admin Approval"]

    async def test_approval_may_move_the_slot(self, db: AsyncSession, outbox):
        org = await _seed_org(db)
        submitted = await _submit(db, org["worker"], outbox)

        result = await ShortLeaveService.department_head_decision(
            db, submitted.id,
            _decision(leave_date="2024-01-04", start_time="15:00", end_time="16:00"),
            actor=org["head"], email_service=outbox,
        )

        assert result.leave_date == date(2024, 1, 4)
        assert (result.start_time, result.end_time, result.duration_hours) == (
            "15:00", "16:00", 1.0,
        )

    async def test_revision_onto_holiday_rejected(self, db: AsyncSession, outbox):
        org = await _seed_org(db)
        submitted = await _submit(db, org["worker"], outbox)
        await _seed_exception_day(db, date(2024, 1, 5))
        await db.commit()

        with pytest.raises(ValidationException):
            await ShortLeaveService.department_head_decision(
                db, submitted.id, _decision(leave_date="2024-01-05"),
                actor=org["head"], email_service=outbox,
            )

        stored = await _fresh(db, submitted.id)
        assert stored.status == LeaveStatus.pending_dept_head
        assert stored.leave_date == date(2024, 1, 3)

    async def test_rejection_ignores_revision(self, db: AsyncSession, outbox):
        org = await _seed_org(db)
        submitted = await _submit(db, org["worker"], outbox)

        result = await ShortLeaveService.department_head_decision(
            db, submitted.id, _decision("rejected", start_time="10:00", end_time="11:00"),
            actor=org["head"], email_service=outbox,
        )

        assert result.status == LeaveStatus.rejected
        assert result.start_time == "14:00"
        assert "Short Leave Rejected by Department Head" in await _titles_for(
            db, org["worker"].id,
        )
        assert await _titles_for(db, org["admin"].id) == []

    async def test_head_of_another_department_forbidden(self, db: AsyncSession, outbox):
        org = await _seed_org(db)
        outsider = await _seed_employee(db, first_name="Omar", role=org["head"].role)
        submitted = await _submit(db, org["worker"], outbox)

        with pytest.raises(ForbiddenException):
            await ShortLeaveService.department_head_decision(
                db, submitted.id, _decision(), actor=outsider, email_service=outbox,
            )

    async def test_admin_cannot_skip_department_head(self, db: AsyncSession, outbox):
        org = await _seed_org(db)
        submitted = await _submit(db, org["worker"], outbox)

        with pytest.raises(ValidationException) as exc_info:
            await ShortLeaveService.admin_decision(
                db, submitted.id, org["admin"].id, _decision(), email_service=outbox,
            )

        assert "not awaiting admin approval" in exc_info.value.detail

    async def test_admin_final_approval(self, db: AsyncSession, outbox):
        org = await _seed_org(db)
        submitted = await _submit(db, org["worker"], outbox)
        await ShortLeaveService.department_head_decision(
            db, submitted.id, _decision(), actor=org["head"], email_service=outbox,
        )

        result = await ShortLeaveService.admin_decision(
            db, submitted.id, org["admin"].id, _decision(), email_service=outbox,
        )

        assert result.status == LeaveStatus.approved
        assert result.admin_id == org["admin"].id
        assert "Short Leave Approved by Admin" in outbox.subjects()

    async def test_unknown_action(self, db: AsyncSession, outbox):
        org = await _seed_org(db)
        submitted = await _submit(db, org["worker"], outbox)

        with pytest.raises(ValidationException):
            await ShortLeaveService.department_head_decision(
                db, submitted.id, _decision("maybe"), actor=org["head"], email_service=outbox,
            )

    async def test_terminal_request_never_transitions(self, db: AsyncSession, outbox):
        org = await _seed_org(db)
        submitted = await _submit(db, org["worker"], outbox)
        await ShortLeaveService.department_head_decision(
            db, submitted.id, _decision("rejected"), actor=org["head"], email_service=outbox,
        )

        with pytest.raises(ValidationException):
            await ShortLeaveService.department_head_decision(
                db, submitted.id, _decision(), actor=org["head"], email_service=outbox,
            )
        with pytest.raises(ValidationException):
            await ShortLeaveService.update_short_leave(
                db, submitted.id, ShortLeaveUpdate(reason="again"), email_service=outbox,
            )

        assert (await _fresh(db, submitted.id)).status == LeaveStatus.rejected


# ═════════════════════════════════════════════════════════════════════
# 4. Edit, delete, list
# ═════════════════════════════════════════════════════════════════════


class TestEditAndDelete:

    async def test_update_recomputes_duration(self, db: AsyncSession, outbox):
        org = await _seed_org(db)
        submitted = await _submit(db, org["worker"], outbox)

        result = await ShortLeaveService.update_short_leave(
            db, submitted.id, ShortLeaveUpdate(end_time="15:00", leave_type="other"),
            actor=org["worker"], email_service=outbox,
        )

        assert (result.start_time, result.end_time, result.duration_hours) == (
            "14:00", "15:00", 1.0,
        )
        assert result.leave_type == ShortLeaveType.other
        assert "Short Leave Request Updated" in await _titles_for(db, org["worker"].id)

    async def test_update_with_bad_time_keeps_stored_values(self, db: AsyncSession, outbox):
        org = await _seed_org(db)
        submitted = await _submit(db, org["worker"], outbox)

        with pytest.raises(ValidationException):
            await ShortLeaveService.update_short_leave(
                db, submitted.id, ShortLeaveUpdate(end_time="13:00"),
                actor=org["worker"], email_service=outbox,
            )

        stored = await _fresh(db, submitted.id)
        assert (stored.end_time, stored.duration_hours) == ("16:30", 2.5)

    async def test_colleague_cannot_edit(self, db: AsyncSession, outbox):
        org = await _seed_org(db)
        colleague = await _seed_employee(db, first_name="Cole", department_id=org["dept"].id)
        submitted = await _submit(db, org["worker"], outbox)

        with pytest.raises(ForbiddenException):
            await ShortLeaveService.update_short_leave(
                db, submitted.id, ShortLeaveUpdate(reason="mine now"),
                actor=colleague, email_service=outbox,
            )

    async def test_delete_removes_row(self, db: AsyncSession, outbox):
        org = await _seed_org(db)
        submitted = await _submit(db, org["worker"], outbox)

        result = await ShortLeaveService.delete_short_leave(db, submitted.id, actor=org["worker"])

        assert result.id == submitted.id
        assert await _fresh(db, submitted.id) is None
        with pytest.raises(NotFoundException):
            await ShortLeaveService.get_short_leave(db, submitted.id)


class TestListing:

    async def test_filters_and_ordering(self, db: AsyncSession, outbox):
        org = await _seed_org(db)
        first = await _submit(db, org["worker"], outbox, day="2024-01-03")
        await _submit(db, org["worker"], outbox, day="2024-01-10")
        await _submit(db, org["head"], outbox, day="2024-02-01")
        await ShortLeaveService.department_head_decision(
            db, first.id, _decision(), actor=org["head"], email_service=outbox,
        )

        everything = await ShortLeaveService.list_short_leaves(db)
        january_pending = await ShortLeaveService.list_short_leaves(
            db,
            employee_ids=[org["worker"].id],
            statuses=[LeaveStatus.pending_dept_head],
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 31),
        )

        assert [r.leave_date for r in everything.data] == [
            date(2024, 2, 1), date(2024, 1, 10), date(2024, 1, 3),
        ]
        assert [r.leave_date for r in january_pending.data] == [date(2024, 1, 10)]

    async def test_empty_allow_list_matches_nothing(self, db: AsyncSession, outbox):
        org = await _seed_org(db)
        await _submit(db, org["worker"], outbox)

        result = await ShortLeaveService.list_short_leaves(db, employee_ids=[])

        assert result.meta.total == 0


# ═════════════════════════════════════════════════════════════════════
# 5. HTTP surface
# ═════════════════════════════════════════════════════════════════════


class TestShortLeaveEndpoints:

    async def _submit(self, client: AsyncClient, employee, **overrides) -> dict:
        body = {"leave_date": "2024-01-03", "start_time": "10:00", "end_time": "11:30"}
        resp = await client.post(
            f"{SHORT_LEAVE}/request", json={**body, **overrides}, headers=auth_headers(employee),
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    async def test_full_approval_flow(self, client: AsyncClient, db: AsyncSession):
        org = await _seed_org(db)
        created = await self._submit(client, org["worker"], reason="Bank")
        assert created["duration_hours"] == 1.5

        head = await client.patch(
            f"{SHORT_LEAVE}/dept-head-action/{created['id']}",
            json={"action": "approved"},
            headers=auth_headers(org["head"]),
        )
        admin = await client.patch(
            f"{SHORT_LEAVE}/admin-action/{created['id']}",
            json={"action": "approved", "comment": "fine"},
            headers=auth_headers(org["admin"]),
        )

        assert head.json()["status"] == "pending_admin"
        assert admin.status_code == 200
        assert admin.json()["status"] == "approved"

    async def test_holiday_is_problem_detail(self, client: AsyncClient, db: AsyncSession):
        org = await _seed_org(db)
        await _seed_exception_day(db, date(2024, 1, 3))
        await db.commit()

        resp = await client.post(
            f"{SHORT_LEAVE}/request",
            json={"leave_date": "2024-01-03", "start_time": "10:00", "end_time": "11:00"},
            headers=auth_headers(org["worker"]),
        )

        assert resp.status_code == 400
        assert resp.headers["content-type"].startswith("application/problem+json")

    async def test_employee_cannot_review(self, client: AsyncClient, db: AsyncSession):
        org = await _seed_org(db)
        created = await self._submit(client, org["worker"])

        resp = await client.patch(
            f"{SHORT_LEAVE}/dept-head-action/{created['id']}",
            json={"action": "approved"},
            headers=auth_headers(org["worker"]),
        )

        assert resp.status_code == 403

    async def test_listing_scoped_and_filtered(self, client: AsyncClient, db: AsyncSession):
        org = await _seed_org(db)
        await self._submit(client, org["worker"])
        await self._submit(client, org["head"], leave_date="2024-01-04")

        own = await client.get(f"{SHORT_LEAVE}/", headers=auth_headers(org["worker"]))
        filtered = await client.get(
            f"{SHORT_LEAVE}/",
            params={"status": ["pending_dept_head", "pending_admin"], "start_date": "2024-01-04"},
            headers=auth_headers(org["admin"]),
        )

        assert own.json()["meta"]["total"] == 1
        assert [r["leave_date"] for r in filtered.json()["data"]] == ["2024-01-04"]

    async def test_listing_bad_range(self, client: AsyncClient, db: AsyncSession):
        org = await _seed_org(db)

        resp = await client.get(
            f"{SHORT_LEAVE}/",
            params={"start_date": "2024-02-01", "end_date": "2024-01-01"},
            headers=auth_headers(org["admin"]),
        )

        assert resp.status_code == 400

    async def test_update_and_delete(self, client: AsyncClient, db: AsyncSession):
        org = await _seed_org(db)
        created = await self._submit(client, org["worker"])

        updated = await client.put(
            f"{SHORT_LEAVE}/{created['id']}",
            json={"start_time": "09:30"},
            headers=auth_headers(org["worker"]),
        )
        deleted = await client.delete(
            f"{SHORT_LEAVE}/{created['id']}", headers=auth_headers(org["worker"]),
        )
        missing = await client.get(
            f"{SHORT_LEAVE}/{created['id']}", headers=auth_headers(org["worker"]),
        )

        assert updated.json()["duration_hours"] == 2.0
        assert deleted.status_code == 200
        assert missing.status_code == 404
