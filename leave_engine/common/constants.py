"""Enums and constants for the leave engine — closed category sets and states."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    hr_admin = "hr_admin"
    system_admin = "system_admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveUnit(str, enum.Enum):
    days = "days"
    hours = "hours"


class LeaveCategory(str, enum.Enum):
    annual = "annual"
    sick = "sick"
    substitute = "substitute"
    compensatory = "compensatory"
    family_event = "family_event"
    civil_duty = "civil_duty"

    @property
    def unit(self) -> LeaveUnit:
        if self in HOUR_CATEGORIES:
            return LeaveUnit.hours
        return LeaveUnit.days

    @property
    def is_ledger_backed(self) -> bool:
        return self in DAY_CATEGORIES or self in HOUR_CATEGORIES

    @property
    def is_legal(self) -> bool:
        return self in LEGAL_CATEGORIES


# Entitlement/used pairs, counted in days
DAY_CATEGORIES: frozenset[LeaveCategory] = frozenset(
    {LeaveCategory.annual, LeaveCategory.sick}
)
# Single running balance, counted in hours
HOUR_CATEGORIES: frozenset[LeaveCategory] = frozenset(
    {LeaveCategory.substitute, LeaveCategory.compensatory}
)
# Statutory categories resolved through the legal entitlement table
LEGAL_CATEGORIES: frozenset[LeaveCategory] = frozenset(
    {LeaveCategory.family_event, LeaveCategory.civil_duty}
)


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class AdjustmentTarget(str, enum.Enum):
    """Which side of a day-counted balance an HR adjustment changes."""

    granted = "granted"
    used = "used"


# ── Calendar ────────────────────────────────────────────────────────

class DayClass(str, enum.Enum):
    weekday = "weekday"
    saturday = "saturday"
    sunday_or_holiday = "sunday_or_holiday"


class CalendarSyncStatus(str, enum.Enum):
    published = "published"
    failed = "failed"
    skipped = "skipped"


# ── Misc constants ──────────────────────────────────────────────────

HOURS_PER_DAY = 8
DAY_AMOUNT_STEP = 0.5             # half-day granularity for day categories
HOUR_AMOUNT_STEP = 0.1            # balances are kept to a tenth of an hour
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
