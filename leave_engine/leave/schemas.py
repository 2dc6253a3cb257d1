"""Leave Pydantic v2 schemas — ledger record, request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
  - *Balance / *Record  → immutable domain values passed between ledger and store
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from leave_engine.common.constants import (
    AdjustmentTarget,
    CalendarSyncStatus,
    DayClass,
    LeaveCategory,
    LeaveStatus,
    LeaveUnit,
)


# ═════════════════════════════════════════════════════════════════════
# Ledger record (domain value)
# ═════════════════════════════════════════════════════════════════════


class DayBalance(BaseModel):
    """Entitlement / used pair for a day-counted category."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["days"] = "days"
    entitlement: int = Field(0, ge=0)
    used: float = Field(0.0, ge=0)

    @model_validator(mode="after")
    def used_within_entitlement(self) -> "DayBalance":
        if self.used > self.entitlement:
            raise ValueError("used must not exceed entitlement.")
        return self

    @property
    def available(self) -> float:
        return self.entitlement - self.used


class HourBalance(BaseModel):
    """Single running balance for an hour-counted category."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["hours"] = "hours"
    hours: float = Field(0.0, ge=0)

    @property
    def available(self) -> float:
        return self.hours


CategoryBalance = Annotated[Union[DayBalance, HourBalance], Field(discriminator="kind")]


class LedgerRecord(BaseModel):
    """Snapshot of one employee's ledger. Changes produce a new record."""

    model_config = ConfigDict(frozen=True)

    employee_id: uuid.UUID
    annual: DayBalance = DayBalance()
    sick: DayBalance = DayBalance()
    substitute: HourBalance = HourBalance()
    compensatory: HourBalance = HourBalance()
    version: int = 1

    def balance(self, category: LeaveCategory) -> CategoryBalance:
        return getattr(self, category.value)

    def available(self, category: LeaveCategory) -> float:
        return self.balance(category).available

    def replace(self, category: LeaveCategory, balance: CategoryBalance) -> "LedgerRecord":
        return self.model_copy(update={category.value: balance})


# ═════════════════════════════════════════════════════════════════════
# Ledger — responses
# ═════════════════════════════════════════════════════════════════════


class LedgerOut(BaseModel):
    """Ledger snapshot with remaining amounts and hour balances in days."""

    employee_id: uuid.UUID
    annual_days: int
    used_annual_days: float
    remaining_annual_days: float
    sick_days: int
    used_sick_days: float
    remaining_sick_days: float
    substitute_leave_hours: float
    substitute_leave_days: float
    compensatory_leave_hours: float
    compensatory_leave_days: float
    version: int


class AvailabilityRequest(BaseModel):
    leave_type: LeaveCategory
    amount: float


class AvailabilityOut(BaseModel):
    can_apply: bool
    available: float
    requested: float
    unit: LeaveUnit
    message: str


class LedgerGrantRequest(BaseModel):
    """Manual credit by HR."""

    leave_type: LeaveCategory
    amount: float
    reason: str = Field(..., min_length=1, max_length=500)


class LedgerAdjustRequest(BaseModel):
    """Signed correction by HR.

    Day categories need a ``target`` (granted entitlement or used days);
    hour categories adjust their single balance and take no target.
    """

    leave_type: LeaveCategory
    target: Optional[AdjustmentTarget] = None
    delta: float = Field(..., description="Positive to add, negative to take back")
    reason: str = Field(..., min_length=1, max_length=500)


# ═════════════════════════════════════════════════════════════════════
# Leave Request
# ═════════════════════════════════════════════════════════════════════


class LeaveApplyRequest(BaseModel):
    """Payload for applying for leave. ``amount`` is days or hours by category."""

    leave_type: LeaveCategory
    sub_type: Optional[str] = Field(
        None,
        max_length=50,
        description="Statutory sub-type, required for family_event / civil_duty",
    )
    amount: float = Field(..., description="Days (annual/sick/statutory) or hours")
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    reason: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveApplyRequest":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date.")
        return self


class LeaveDecisionRequest(BaseModel):
    """Body for approve / reject."""

    notes: Optional[str] = Field(None, max_length=1000)


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveCategory
    sub_type: Optional[str] = None
    requested_amount: float
    unit: LeaveUnit
    start_date: date
    end_date: date
    reason: Optional[str] = None
    status: LeaveStatus
    submitted_at: datetime
    processed_at: Optional[datetime] = None
    processed_by: Optional[uuid.UUID] = None
    admin_notes: Optional[str] = None

    # Filled by the service on approval, not from ORM
    calendar_sync: Optional[CalendarSyncStatus] = None


class LeaveApplicationOut(BaseModel):
    accepted: bool
    request_id: uuid.UUID
    message: str
    request: LeaveRequestOut


# ═════════════════════════════════════════════════════════════════════
# Overtime
# ═════════════════════════════════════════════════════════════════════


class OvertimeCreditCreate(BaseModel):
    """Worked day to convert; give ``hours_worked`` or a stay window."""

    employee_id: uuid.UUID
    work_date: date
    hours_worked: Optional[float] = Field(None, ge=0)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    had_dinner: bool = False

    @model_validator(mode="after")
    def validate_source(self) -> "OvertimeCreditCreate":
        has_window = self.start_time is not None and self.end_time is not None
        if self.hours_worked is None and not has_window:
            raise ValueError("Provide hours_worked or both start_time and end_time.")
        return self


class OvertimeCreditOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    work_date: date
    day_class: DayClass
    holiday_name: Optional[str] = None
    hours_worked: float
    substitute_hours: float
    compensatory_hours: float
    created_by: Optional[uuid.UUID] = None
    created_at: datetime


# ═════════════════════════════════════════════════════════════════════
# Accrual / promotion / statutory table
# ═════════════════════════════════════════════════════════════════════


class AccrualRunRequest(BaseModel):
    as_of: Optional[date] = None


class AccrualRunOut(BaseModel):
    as_of: date
    processed: int
    updated: int
    skipped: list[uuid.UUID] = Field(default_factory=list)


class PromotionStatusOut(BaseModel):
    employee_id: uuid.UUID
    employee_code: Optional[str] = None
    full_name: Optional[str] = None
    hire_date: Optional[date] = None
    working_months: int
    remaining_days: float
    is_target: bool


class LegalEntitlementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category: LeaveCategory
    sub_type: str
    days: Union[int, str]
    description: str
    requires_document: bool
