"""Annual-leave promotion targets.

Employees with at least a year of service and five or more unused annual days
must be prompted to use them before they lapse.
"""

from __future__ import annotations

import math
from datetime import date
from typing import Optional, Protocol

AVERAGE_DAYS_PER_MONTH = 30.44
MIN_WORKING_MONTHS = 12
MIN_REMAINING_DAYS = 5


class AnnualBalance(Protocol):
    annual_days: int
    used_annual_days: float


def working_months(hire_date: date, today: Optional[date] = None) -> int:
    today = today or date.today()
    return math.floor((today - hire_date).days / AVERAGE_DAYS_PER_MONTH)


def remaining_annual_days(ledger: AnnualBalance) -> float:
    return ledger.annual_days - ledger.used_annual_days


def is_promotion_target(
    hire_date: Optional[date],
    ledger: Optional[AnnualBalance],
    today: Optional[date] = None,
) -> bool:
    if hire_date is None or ledger is None:
        return False
    return (
        working_months(hire_date, today) >= MIN_WORKING_MONTHS
        and remaining_annual_days(ledger) >= MIN_REMAINING_DAYS
    )
