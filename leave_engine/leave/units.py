"""Hours ↔ days conversion and hour rounding."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from leave_engine.common.constants import HOURS_PER_DAY

_TENTH = Decimal("0.1")


def hours_to_days(hours: float) -> float:
    if hours <= 0:
        return 0.0
    return hours / HOURS_PER_DAY


def days_to_hours(days: float) -> float:
    return days * HOURS_PER_DAY


def round_hours(hours: float) -> float:
    """Round to the nearest 0.1 hour, halves away from zero."""
    return float(Decimal(str(hours)).quantize(_TENTH, rounding=ROUND_HALF_UP))


def describe_hours(hours: float) -> str:
    """Human-readable form, e.g. ``"1.125 days (9 hours)"``."""
    days = hours_to_days(hours)
    return f"{days:g} days ({hours:g} hours)"
