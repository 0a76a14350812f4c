"""Calendar Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from hr_leave.common.constants import EventType


class WorkingDayResultOut(BaseModel):
    """Working-day breakdown of an inclusive date range."""

    model_config = ConfigDict(from_attributes=True)

    total_days: int
    working_days: int
    excluded_days: int


class CalendarEventOut(BaseModel):
    """Exception-day (holiday / weekend) entry."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    description: Optional[str] = None
    type: EventType
    start_date: date
    end_date: date


class WeekendSyncRequest(BaseModel):
    """Payload for regenerating weekend exception days."""

    weekend_days: Optional[list[str]] = Field(
        default=None,
        description="Day names, e.g. ['Saturday', 'Sunday']; defaults to configuration.",
    )
    horizon_days: Optional[int] = Field(default=None, ge=1, le=730)


class WeekendSyncOut(BaseModel):
    created: int
    removed: int
