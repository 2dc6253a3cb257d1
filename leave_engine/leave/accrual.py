"""Tenure accrual — annual leave entitlement by calendar years since hire.

Four tiers keyed by ``years_passed = as_of.year - hire_date.year``:

* 0 (hire year): one day per calendar month crossed, plus one once the
  hire day-of-month has been reached in the current month.
* 1: 15 days pro-rated by the share of the hire year worked (rounded up),
  plus the 0-based hire month as a top-up.
* 2: a flat 15 days.
* 3+: 15 plus one day per two years, capped at 25.

The tiers mix calendar-month and anniversary semantics on purpose; they
encode a fixed HR policy, not an elapsed-duration count.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

BASE_ANNUAL_DAYS = 15
MAX_ANNUAL_DAYS = 25
_DAYS_PER_YEAR = 365


def _first_year_days(hire_date: date, as_of: date) -> int:
    months = as_of.month - hire_date.month
    if as_of.day >= hire_date.day:
        months += 1
    return max(0, months)


def _second_year_days(hire_date: date) -> int:
    days_worked = (date(hire_date.year, 12, 31) - hire_date).days + 1
    # integer ceil of days_worked / 365 * 15
    prorated = -(-(days_worked * BASE_ANNUAL_DAYS) // _DAYS_PER_YEAR)
    return prorated + (hire_date.month - 1)


def calculate_annual_leave(hire_date: Optional[date], as_of: Optional[date] = None) -> int:
    """Annual leave entitlement in whole days; 0 when *hire_date* is missing."""
    if hire_date is None:
        return 0
    as_of = as_of or date.today()

    years_passed = as_of.year - hire_date.year
    if years_passed <= 0:
        return _first_year_days(hire_date, as_of)
    if years_passed == 1:
        return _second_year_days(hire_date)
    if years_passed == 2:
        return BASE_ANNUAL_DAYS
    return min(BASE_ANNUAL_DAYS + (years_passed - 1) // 2, MAX_ANNUAL_DAYS)
