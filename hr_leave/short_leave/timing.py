"""Short-leave timing rules — HH:MM parsing and shift-window checks.

Times are handled as minutes since midnight. A shift whose end is not after
its start (e.g. 21:00 - 06:00) runs past midnight; times before the shift
start then belong to the following morning.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Any

from hr_leave.common.constants import ShiftType, ShortLeaveType
from hr_leave.common.exceptions import ValidationException
from hr_leave.config import settings
from hr_leave.leave.workflow import parse_iso_date

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
MINUTES_PER_DAY = 24 * 60

INVALID_DAY_MESSAGE = "Invalid date"
INVALID_TIME_MESSAGE = "Invalid start or end time format (expected HH:mm)"
END_BEFORE_START_MESSAGE = "End time must be after start time"


def parse_short_leave_date(value: Any) -> date:
    try:
        return parse_iso_date(value)
    except ValidationException:
        raise ValidationException({"date": [INVALID_DAY_MESSAGE]}) from None


def parse_short_leave_type(value: Any) -> ShortLeaveType:
    if value is None:
        return ShortLeaveType.casual
    if isinstance(value, ShortLeaveType):
        return value
    if isinstance(value, str):
        try:
            return ShortLeaveType(value.strip().lower())
        except ValueError:
            pass
    raise ValidationException(
        {"leave_type": ["Invalid short leave type. Use 'sick', 'casual' or 'other'"]}
    )


def parse_clock(value: Any) -> int:
    """``"HH:MM"`` → minutes since midnight."""
    match = TIME_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise ValidationException({"time": [INVALID_TIME_MESSAGE]})
    return int(match.group(1)) * 60 + int(match.group(2))


def format_clock(minutes: int) -> str:
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass(frozen=True)
class ShortLeaveSpan:
    start_time: str
    end_time: str
    duration_hours: float


@dataclass(frozen=True)
class ShiftWindow:
    """Working hours of one shift, in minutes since midnight."""

    label: str
    start: int
    end: int

    @classmethod
    def for_shift(cls, shift: ShiftType) -> ShiftWindow:
        if shift == ShiftType.night:
            return cls(
                "night shift",
                parse_clock(settings.NIGHT_SHIFT_START),
                parse_clock(settings.NIGHT_SHIFT_END),
            )
        return cls(
            "day shift",
            parse_clock(settings.DAY_SHIFT_START),
            parse_clock(settings.DAY_SHIFT_END),
        )

    @property
    def overnight(self) -> bool:
        return self.end <= self.start

    def __str__(self) -> str:
        return f"{format_clock(self.start)} - {format_clock(self.end)}"

    def _position(self, minutes: int) -> int:
        if self.overnight and minutes < self.start:
            return minutes + MINUTES_PER_DAY
        return minutes

    def measure(self, start_raw: Any, end_raw: Any) -> ShortLeaveSpan:
        """Validate a start/end pair against this shift and compute its length."""
        start, end = parse_clock(start_raw), parse_clock(end_raw)
        start_pos, end_pos = self._position(start), self._position(end)
        if end_pos <= start_pos:
            raise ValidationException({"end_time": [END_BEFORE_START_MESSAGE]})

        shift_end = self.end + MINUTES_PER_DAY if self.overnight else self.end
        if start_pos < self.start or end_pos > shift_end:
            raise ValidationException(
                {
                    "time": [
                        f"Short leave times must be within your {self.label} "
                        f"working hours ({self})"
                    ]
                }
            )
        return ShortLeaveSpan(
            start_time=format_clock(start),
            end_time=format_clock(end),
            duration_hours=round((end_pos - start_pos) / 60, 2),
        )
