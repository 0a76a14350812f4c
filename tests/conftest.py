"""Shared test fixtures — async DB, client, identity headers, seed helpers.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Keep configuration deterministic before pydantic-settings is first touched
os.environ.setdefault("EMAIL_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

import uuid
from datetime import date, datetime, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from hr_leave.common.constants import (
    EventType,
    LeaveStatus,
    LeaveType,
    ShiftType,
    UserRole,
)
from hr_leave.database import Base, get_db
from hr_leave.main import create_app
from hr_leave.notifications.email import EmailService, get_email_service

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import hr_leave.calendar.models  # noqa: F401
import hr_leave.core_hr.models  # noqa: F401
import hr_leave.leave.models  # noqa: F401
import hr_leave.notifications.models  # noqa: F401
import hr_leave.short_leave.models  # noqa: F401

from hr_leave.calendar.models import CalendarEvent
from hr_leave.core_hr.models import Department, Employee, department_heads
from hr_leave.leave.models import LeaveRequest

# ── SQLite compat: compile PG-specific types ────────────────────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "JSON"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from hr_leave.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Email double ────────────────────────────────────────────────────


class RecordingEmailService(EmailService):
    """Captures outgoing mail instead of talking to SMTP."""

    def __init__(self, *, fail: bool = False) -> None:
        super().__init__(smtp_user="test", smtp_password="test", enabled=True)
        self.fail = fail
        self.sent: list[tuple[list[str], str, str]] = []

    def _send_sync(self, recipients: list[str], subject: str, body: str) -> None:
        if self.fail:
            raise ConnectionRefusedError("SMTP server unreachable")
        self.sent.append((recipients, subject, body))

    def subjects(self) -> list[str]:
        return [subject for _, subject, _ in self.sent]


@pytest.fixture
def outbox() -> RecordingEmailService:
    return RecordingEmailService()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(outbox):
    """Create a fresh app instance with DB and mail dependencies overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.dependency_overrides[get_email_service] = lambda: outbox
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Identity helpers ────────────────────────────────────────────────

def auth_headers(employee: Employee) -> dict[str, str]:
    """Headers the gateway would forward for *employee*."""
    return {"X-Employee-Id": str(employee.id)}


# ── Seed helpers ────────────────────────────────────────────────────

async def _seed_department(db: AsyncSession, *, name: str = "Engineering") -> Department:
    dept = Department(id=uuid.uuid4(), name=name, is_active=True)
    db.add(dept)
    await db.flush()
    return dept


async def _seed_employee(
    db: AsyncSession,
    *,
    first_name: str = "Test",
    last_name: str = "Employee",
    email: Optional[str] = None,
    role: UserRole = UserRole.employee,
    department_id: Optional[uuid.UUID] = None,
    is_active: bool = True,
    shift: ShiftType = ShiftType.day,
) -> Employee:
    emp = Employee(
        id=uuid.uuid4(),
        first_name=first_name,
        last_name=last_name,
        email=email or f"{first_name.lower()}.{uuid.uuid4().hex[:6]}@example.com",
        role=role,
        department_id=department_id,
        is_active=is_active,
        shift=shift,
        created_at=datetime.now(timezone.utc),
    )
    db.add(emp)
    await db.flush()
    return emp


async def _make_department_head(
    db: AsyncSession,
    department_id: uuid.UUID,
    employee_id: uuid.UUID,
) -> None:
    await db.execute(
        department_heads.insert().values(
            department_id=department_id, employee_id=employee_id,
        )
    )
    await db.flush()


async def _seed_exception_day(
    db: AsyncSession,
    start: date,
    end: Optional[date] = None,
    *,
    kind: EventType = EventType.holiday,
    title: Optional[str] = None,
) -> CalendarEvent:
    event = CalendarEvent(
        id=uuid.uuid4(),
        title=title or f"{kind.value.title()} {start.isoformat()}",
        type=kind,
        start_date=start,
        end_date=end or start,
        all_day=True,
    )
    db.add(event)
    await db.flush()
    return event


async def _seed_leave_request(
    db: AsyncSession,
    employee: Employee,
    start: date,
    end: date,
    *,
    status: LeaveStatus = LeaveStatus.pending_dept_head,
    leave_type: LeaveType = LeaveType.casual,
    paid: int = 0,
    unpaid: int = 0,
    dept_head_ids: Optional[list[uuid.UUID]] = None,
) -> LeaveRequest:
    leave_req = LeaveRequest(
        id=uuid.uuid4(),
        employee_id=employee.id,
        department_id=employee.department_id,
        start_date=start,
        end_date=end,
        leave_type=leave_type,
        status=status,
        dept_head_ids=[str(h) for h in (dept_head_ids or [])],
        paid_leave_days=paid,
        unpaid_leave_days=unpaid,
    )
    db.add(leave_req)
    await db.flush()
    return leave_req


async def _seed_org(db: AsyncSession) -> dict:
    """Department with one head, one employee and one admin."""
    dept = await _seed_department(db)
    head = await _seed_employee(
        db, first_name="Dana", last_name="Head",
        role=UserRole.department_head, department_id=dept.id,
    )
    worker = await _seed_employee(
        db, first_name="Wes", last_name="Worker", department_id=dept.id,
    )
    admin = await _seed_employee(
        db, first_name="Ada", last_name="Admin", role=UserRole.admin,
    )
    await _make_department_head(db, dept.id, head.id)
    await db.commit()
    return {"dept": dept, "head": head, "worker": worker, "admin": admin}
