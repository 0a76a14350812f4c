"""Calendar service layer — exception-day index and working-day engine.

Business logic:
  - Load holiday / weekend spans that intersect a date window
  - Answer per-day membership against the loaded window
  - Count total / working / excluded days for an inclusive range
  - Regenerate weekend exception days from the configured weekday names
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Iterator, Optional, Protocol, Sequence, Union

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_leave.calendar.models import CalendarEvent
from hr_leave.common.constants import EXCEPTION_EVENT_TYPES, WEEKDAY_NUMBERS, EventType
from hr_leave.common.exceptions import DependencyException, ValidationException

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]


# ═════════════════════════════════════════════════════════════════════
# Value types
# ═════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ExceptionSpan:
    """A holiday or weekend entry covering [start_date, end_date]."""

    kind: EventType
    start_date: date
    end_date: date


@dataclass(frozen=True)
class WorkingDayResult:
    total_days: int
    working_days: int
    excluded_days: int


EMPTY_RESULT = WorkingDayResult(total_days=0, working_days=0, excluded_days=0)


def as_date(value: DateLike) -> date:
    """Drop the time-of-day part; leave plain dates untouched."""
    if isinstance(value, datetime):
        return value.date()
    return value


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


# ═════════════════════════════════════════════════════════════════════
# Exception-day source
# ═════════════════════════════════════════════════════════════════════


class ExceptionSpanSource(Protocol):
    async def fetch_spans(self, start: date, end: date) -> list[ExceptionSpan]:
        ...


class CalendarEventSource:
    """Reads exception spans from the ``calendar_events`` table."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def fetch_spans(self, start: date, end: date) -> list[ExceptionSpan]:
        """Return holiday/weekend spans intersecting [start, end].

        Raises DependencyException when the store cannot be read; callers
        must never assume an empty calendar instead.
        """
        query = select(
            CalendarEvent.type,
            CalendarEvent.start_date,
            CalendarEvent.end_date,
        ).where(
            CalendarEvent.type.in_(list(EXCEPTION_EVENT_TYPES)),
            CalendarEvent.start_date <= end,
            CalendarEvent.end_date >= start,
        )
        try:
            result = await self._db.execute(query)
        except SQLAlchemyError as exc:
            logger.error("Exception calendar unavailable for %s..%s: %s", start, end, exc)
            raise DependencyException("Exception calendar") from exc

        return [
            ExceptionSpan(kind=row.type, start_date=row.start_date, end_date=row.end_date)
            for row in result.all()
        ]


# ═════════════════════════════════════════════════════════════════════
# CalendarIndex
# ═════════════════════════════════════════════════════════════════════


class CalendarIndex:
    """Per-day membership set for exception days inside a fixed window.

    Spans are clipped to the window before expansion, so membership outside
    the window is unknown and ``covers`` must be checked before reuse.
    """

    def __init__(
        self,
        window_start: date,
        window_end: date,
        spans: Iterable[ExceptionSpan],
    ) -> None:
        self.window_start = window_start
        self.window_end = window_end
        self._days: set[date] = set()

        for span in spans:
            if span.kind not in EXCEPTION_EVENT_TYPES:
                continue
            clipped_start = max(span.start_date, window_start)
            clipped_end = min(span.end_date, window_end)
            self._days.update(iter_days(clipped_start, clipped_end))

    @classmethod
    async def load(
        cls,
        source: ExceptionSpanSource,
        start: DateLike,
        end: DateLike,
    ) -> CalendarIndex:
        window_start, window_end = as_date(start), as_date(end)
        spans = await source.fetch_spans(window_start, window_end)
        return cls(window_start, window_end, spans)

    def covers(self, start: date, end: date) -> bool:
        return self.window_start <= start and end <= self.window_end

    def is_exception_day(self, day: date) -> bool:
        return day in self._days

    def __len__(self) -> int:
        return len(self._days)


def count_working_days(
    start: DateLike,
    end: DateLike,
    index: CalendarIndex,
) -> WorkingDayResult:
    """Count total / working / excluded days in the inclusive range."""
    start_day, end_day = as_date(start), as_date(end)
    if start_day > end_day:
        return EMPTY_RESULT
    if not index.covers(start_day, end_day):
        raise ValueError(
            f"Calendar index {index.window_start}..{index.window_end} "
            f"does not cover {start_day}..{end_day}"
        )

    total = (end_day - start_day).days + 1
    excluded = sum(1 for day in iter_days(start_day, end_day) if index.is_exception_day(day))
    return WorkingDayResult(
        total_days=total,
        working_days=total - excluded,
        excluded_days=excluded,
    )


# ═════════════════════════════════════════════════════════════════════
# WorkingDayCalculator
# ═════════════════════════════════════════════════════════════════════


class WorkingDayCalculator:
    """Fetches exception days for each query window and counts working days.

    Nothing is cached between calls; holiday configuration may change
    between two edits of the same request.
    """

    def __init__(self, source: ExceptionSpanSource) -> None:
        self._source = source

    @classmethod
    def for_session(cls, db: AsyncSession) -> WorkingDayCalculator:
        return cls(CalendarEventSource(db))

    async def load_index(self, start: DateLike, end: DateLike) -> CalendarIndex:
        return await CalendarIndex.load(self._source, start, end)

    async def compute(self, start: DateLike, end: DateLike) -> WorkingDayResult:
        start_day, end_day = as_date(start), as_date(end)
        if start_day > end_day:
            return EMPTY_RESULT
        index = await self.load_index(start_day, end_day)
        return count_working_days(start_day, end_day, index)


# ═════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════


async def list_exception_days(
    db: AsyncSession,
    from_date: date,
    to_date: date,
) -> Sequence[CalendarEvent]:
    """Holiday and weekend events intersecting the range, oldest first."""
    result = await db.execute(
        select(CalendarEvent)
        .where(
            CalendarEvent.type.in_(list(EXCEPTION_EVENT_TYPES)),
            CalendarEvent.start_date <= to_date,
            CalendarEvent.end_date >= from_date,
        )
        .order_by(CalendarEvent.start_date, CalendarEvent.type)
    )
    return result.scalars().all()


# ═════════════════════════════════════════════════════════════════════
# Weekend sync
# ═════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class WeekendSyncResult:
    created: int
    removed: int


def parse_weekend_days(day_names: Iterable[str]) -> set[int]:
    """Map day names ("Saturday") to ``date.weekday()`` numbers."""
    numbers: set[int] = set()
    unknown: list[str] = []
    for name in day_names:
        number = WEEKDAY_NUMBERS.get(name.strip().lower())
        if number is None:
            unknown.append(name)
        else:
            numbers.add(number)
    if unknown:
        raise ValidationException(
            {"weekend_days": [f"Unknown day name(s): {', '.join(unknown)}."]}
        )
    return numbers


async def sync_weekend_events(
    db: AsyncSession,
    weekend_days: Sequence[str],
    *,
    today: Optional[date] = None,
    horizon_days: int = 365,
    created_by=None,
) -> WeekendSyncResult:
    """Make weekend events in [today, today + horizon] match *weekend_days*.

    Weekend rows on days that are no longer weekends are deleted; missing
    ones are created. Running twice with the same configuration is a no-op.
    """
    start = today or date.today()
    end = start + timedelta(days=horizon_days)

    if not weekend_days:
        logger.warning("No weekend days configured; skipping weekend sync")
        return WeekendSyncResult(created=0, removed=0)

    weekday_numbers = parse_weekend_days(weekend_days)
    wanted = {day for day in iter_days(start, end) if day.weekday() in weekday_numbers}

    result = await db.execute(
        select(CalendarEvent).where(
            CalendarEvent.type == EventType.weekend,
            CalendarEvent.start_date >= start,
            CalendarEvent.start_date <= end,
        )
    )
    existing = result.scalars().all()
    existing_days = {event.start_date for event in existing}

    stale_ids = [event.id for event in existing if event.start_date not in wanted]
    if stale_ids:
        await db.execute(delete(CalendarEvent).where(CalendarEvent.id.in_(stale_ids)))

    created = 0
    for day in sorted(wanted - existing_days):
        day_name = day.strftime("%A")
        db.add(
            CalendarEvent(
                title=f"Weekend - {day_name}",
                description=f"{day_name} weekend for all employees",
                type=EventType.weekend,
                start_date=day,
                end_date=day,
                all_day=True,
                created_by=created_by,
            )
        )
        created += 1

    await db.flush()
    logger.info(
        "Weekend sync %s..%s: %d created, %d removed",
        start, end, created, len(stale_ids),
    )
    return WeekendSyncResult(created=created, removed=len(stale_ids))
