"""Leave period validation on top of the working-day engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from hr_leave.calendar.service import DateLike, WorkingDayCalculator, WorkingDayResult
from hr_leave.common.exceptions import ValidationException

ONLY_EXCEPTION_DAYS_MESSAGE = (
    "Cannot request leave for a period that contains only holidays and weekends"
)


@dataclass(frozen=True)
class PeriodValidation:
    is_valid: bool
    message: Optional[str]
    duration: WorkingDayResult


class LeavePeriodValidator:
    """Rejects periods that contain no working day at all."""

    def __init__(self, calculator: WorkingDayCalculator) -> None:
        self._calculator = calculator

    async def validate(self, start: DateLike, end: DateLike) -> PeriodValidation:
        duration = await self._calculator.compute(start, end)
        if duration.working_days == 0:
            return PeriodValidation(
                is_valid=False,
                message=ONLY_EXCEPTION_DAYS_MESSAGE,
                duration=duration,
            )
        return PeriodValidation(is_valid=True, message=None, duration=duration)

    async def validate_or_raise(self, start: DateLike, end: DateLike) -> WorkingDayResult:
        """Return the duration of a valid period or raise ValidationException."""
        validation = await self.validate(start, end)
        if not validation.is_valid:
            raise ValidationException({"period": [validation.message]})
        return validation.duration
