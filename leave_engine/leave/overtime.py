"""Overtime-to-leave conversion.

Saturday work earns substitute hours, Sunday/holiday work earns compensatory
hours; weekday work earns nothing. The first 8 hours are regular, the rest
overtime, each with its own multiplier:

=================  ========  =========  =============
day class          regular   overtime   credited to
=================  ========  =========  =============
saturday           1.0       1.5        substitute
sunday_or_holiday  1.5       2.0        compensatory
=================  ========  =========  =============
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

from leave_engine.common.constants import HOURS_PER_DAY, DayClass
from leave_engine.common.exceptions import InvalidAmount
from leave_engine.leave.units import round_hours

BASIC_BREAK_HOURS = 1.0
DINNER_BREAK_HOURS = 1.0

_MULTIPLIERS: dict[DayClass, tuple[float, float]] = {
    DayClass.saturday: (1.0, 1.5),
    DayClass.sunday_or_holiday: (1.5, 2.0),
}


@dataclass(frozen=True)
class OvertimeConversion:
    day_class: DayClass
    hours_worked: float
    regular_hours: float
    overtime_hours: float
    substitute_hours: float = 0.0
    compensatory_hours: float = 0.0

    @property
    def earned_hours(self) -> float:
        return self.substitute_hours + self.compensatory_hours


def convert_overtime(day_class: DayClass, hours_worked: float) -> OvertimeConversion:
    """Convert *hours_worked* on a day of *day_class* into leave hours."""
    if not math.isfinite(hours_worked) or hours_worked < 0:
        raise InvalidAmount(
            f"Hours worked must be a non-negative number, got {hours_worked}.",
            field="hours_worked",
        )

    regular = min(hours_worked, HOURS_PER_DAY)
    overtime = max(0.0, hours_worked - HOURS_PER_DAY)

    multipliers = _MULTIPLIERS.get(day_class)
    if multipliers is None:
        return OvertimeConversion(day_class, hours_worked, regular, overtime)

    regular_rate, overtime_rate = multipliers
    earned = round_hours(regular * regular_rate + overtime * overtime_rate)
    if day_class == DayClass.saturday:
        return OvertimeConversion(
            day_class, hours_worked, regular, overtime, substitute_hours=earned,
        )
    return OvertimeConversion(
        day_class, hours_worked, regular, overtime, compensatory_hours=earned,
    )


def worked_hours_from_stay(start: datetime, end: datetime, had_dinner: bool = False) -> float:
    """Hours worked for an office stay, less the basic break and optional dinner break."""
    if end < start:
        raise InvalidAmount("End time must not be earlier than start time.", field="end_time")

    stay = (end - start).total_seconds() / 3600
    worked = stay - BASIC_BREAK_HOURS
    if had_dinner:
        worked -= DINNER_BREAK_HOURS
    return round_hours(max(0.0, worked))
