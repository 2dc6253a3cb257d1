"""Leave ORM models: LeaveLedger, LeaveRequest, OvertimeCredit."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from leave_engine.common.constants import DayClass, LeaveCategory, LeaveStatus, LeaveUnit
from leave_engine.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeaveLedger(Base):
    """One row per employee. Mutated only through ``LedgerService``."""

    __tablename__ = "leave_ledgers"
    __table_args__ = (
        sa.CheckConstraint("used_annual_days <= annual_days", name="ck_ledger_annual_used"),
        sa.CheckConstraint("used_sick_days <= sick_days", name="ck_ledger_sick_used"),
        sa.CheckConstraint("substitute_leave_hours >= 0", name="ck_ledger_substitute_hours"),
        sa.CheckConstraint("compensatory_leave_hours >= 0", name="ck_ledger_compensatory_hours"),
    )

    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), primary_key=True,
    )

    # Day categories: entitlement / used pairs
    annual_days: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    used_annual_days: Mapped[float] = mapped_column(
        sa.Numeric(5, 1, asdecimal=False), nullable=False, default=0.0,
    )
    sick_days: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    used_sick_days: Mapped[float] = mapped_column(
        sa.Numeric(5, 1, asdecimal=False), nullable=False, default=0.0,
    )

    # Hour categories: running balances
    substitute_leave_hours: Mapped[float] = mapped_column(
        sa.Numeric(6, 1, asdecimal=False), nullable=False, default=0.0,
    )
    compensatory_leave_hours: Mapped[float] = mapped_column(
        sa.Numeric(6, 1, asdecimal=False), nullable=False, default=0.0,
    )

    # Compare-and-swap token, bumped on every save
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<LeaveLedger {self.employee_id} v{self.version}>"


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.Index("ix_leave_requests_employee_status", "employee_id", "status"),
        sa.Index("ix_leave_requests_submitted_at", "submitted_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    leave_type: Mapped[LeaveCategory] = mapped_column(
        sa.Enum(LeaveCategory, name="leave_category"), nullable=False,
    )
    sub_type: Mapped[Optional[str]] = mapped_column(sa.String(50))
    requested_amount: Mapped[float] = mapped_column(
        sa.Numeric(5, 1, asdecimal=False), nullable=False,
    )
    unit: Mapped[LeaveUnit] = mapped_column(
        sa.Enum(LeaveUnit, name="leave_unit"), nullable=False,
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        nullable=False,
        default=LeaveStatus.pending,
    )
    submitted_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    processed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    admin_notes: Mapped[Optional[str]] = mapped_column(sa.Text)

    @property
    def is_terminal(self) -> bool:
        return self.status != LeaveStatus.pending

    def __repr__(self) -> str:
        return f"<LeaveRequest {self.id} {self.leave_type.value} {self.status.value}>"


class OvertimeCredit(Base):
    """Audit record of one worked day converted into leave hours."""

    __tablename__ = "overtime_credits"
    __table_args__ = (
        sa.UniqueConstraint("employee_id", "work_date", name="uq_overtime_credit_day"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    work_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    day_class: Mapped[DayClass] = mapped_column(
        sa.Enum(DayClass, name="day_class"), nullable=False,
    )
    holiday_name: Mapped[Optional[str]] = mapped_column(sa.String(100))
    hours_worked: Mapped[float] = mapped_column(
        sa.Numeric(5, 1, asdecimal=False), nullable=False,
    )
    substitute_hours: Mapped[float] = mapped_column(
        sa.Numeric(5, 1, asdecimal=False), nullable=False, default=0.0,
    )
    compensatory_hours: Mapped[float] = mapped_column(
        sa.Numeric(5, 1, asdecimal=False), nullable=False, default=0.0,
    )
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow,
    )
