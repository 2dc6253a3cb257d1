"""Leave module test suite — application, approval/rejection, balance drift,
statutory categories, overtime crediting, grants, accrual runs, promotion scans
and API endpoints.

Tests run against SQLite via the shared conftest.py fixtures.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import date, datetime
from typing import Optional

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_engine.common.audit import AuditTrail
from leave_engine.common.constants import (
    AdjustmentTarget,
    CalendarSyncStatus,
    DayClass,
    LeaveCategory,
    LeaveStatus,
    UserRole,
)
from leave_engine.common.exceptions import (
    ConflictError,
    InsufficientBalance,
    InvalidAmount,
    InvalidState,
    NotFoundException,
    UpstreamUnavailable,
    ValidationException,
)
from leave_engine.config import settings
from leave_engine.core_hr.models import Employee
from leave_engine.holidays.classifier import StaticHolidayClassifier
from leave_engine.leave.models import LeaveLedger, LeaveRequest, OvertimeCredit
from leave_engine.leave.schemas import (
    LeaveApplyRequest,
    LedgerAdjustRequest,
    LedgerGrantRequest,
    OvertimeCreditCreate,
)
from leave_engine.leave.service import LeaveService
from tests.conftest import (
    RecordingPublisher,
    TestSessionFactory,
    _make_auth_headers,
    _make_employee,
    _make_ledger,
)

SATURDAY = date(2026, 10, 17)
SUNDAY = date(2026, 10, 18)
TUESDAY = date(2026, 10, 20)


# ═════════════════════════════════════════════════════════════════════
# Helpers — seed data for leave tests
# ═════════════════════════════════════════════════════════════════════


async def _seed_employee(db: AsyncSession, **kwargs) -> Employee:
    emp = Employee(**_make_employee(**kwargs))
    db.add(emp)
    await db.flush()
    return emp


async def _seed_ledger(db: AsyncSession, employee_id: uuid.UUID, **kwargs) -> LeaveLedger:
    ledger = LeaveLedger(**_make_ledger(employee_id, **kwargs))
    db.add(ledger)
    await db.flush()
    return ledger


async def _load_ledger(db: AsyncSession, employee_id: uuid.UUID) -> LeaveLedger:
    result = await db.execute(
        select(LeaveLedger)
        .where(LeaveLedger.employee_id == employee_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().one()


async def _count_requests(db: AsyncSession) -> int:
    return (await db.execute(select(func.count()).select_from(LeaveRequest))).scalar_one()


def _apply(
    category: LeaveCategory,
    amount: float,
    *,
    sub_type: Optional[str] = None,
    start: date = date(2026, 11, 2),
    end: date = date(2026, 11, 4),
) -> LeaveApplyRequest:
    return LeaveApplyRequest(
        leave_type=category,
        sub_type=sub_type,
        amount=amount,
        start_date=start,
        end_date=end,
        reason="Family trip",
    )


class _FailingClassifier:
    async def is_holiday(self, day: date) -> Optional[str]:
        raise UpstreamUnavailable("Holiday service", "down")


# ═════════════════════════════════════════════════════════════════════
# 1. Leave Application — service layer
# ═════════════════════════════════════════════════════════════════════


class TestApplyLeave:
    """Tests for LeaveService.apply_leave()."""

    async def test_apply_leave_happy_path(self, db: AsyncSession):
        """Accepted request is pending and does not touch the ledger yet."""
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id, annual_days=15)

        result = await LeaveService.apply_leave(db, emp.id, _apply(LeaveCategory.annual, 3))

        assert result.accepted is True
        assert result.request.status == LeaveStatus.pending
        assert result.request.requested_amount == 3
        assert result.request.unit.value == "days"
        assert (await _load_ledger(db, emp.id)).used_annual_days == 0

    async def test_insufficient_balance_creates_no_request(self, db: AsyncSession):
        """Submission over the balance fails fast with nothing persisted."""
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id, annual_days=2)

        with pytest.raises(InsufficientBalance) as exc_info:
            await LeaveService.apply_leave(db, emp.id, _apply(LeaveCategory.annual, 3))

        assert exc_info.value.available == 2
        assert await _count_requests(db) == 0

    async def test_insufficient_hours_message(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id, substitute_leave_hours=4.5)

        with pytest.raises(InsufficientBalance) as exc_info:
            await LeaveService.apply_leave(db, emp.id, _apply(LeaveCategory.substitute, 6))

        assert exc_info.value.detail == (
            "You asked for 6 hours of substitute leave but only have 4.5 available."
        )

    @pytest.mark.parametrize(
        ("category", "amount"),
        [
            (LeaveCategory.annual, 0),
            (LeaveCategory.annual, -1),
            (LeaveCategory.annual, 1.2),
            (LeaveCategory.substitute, 24.5),
            (LeaveCategory.substitute, 0.04),
            (LeaveCategory.compensatory, 2.25),
        ],
    )
    async def test_invalid_amount(self, db: AsyncSession, category, amount):
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id, annual_days=15, substitute_leave_hours=40)

        with pytest.raises(InvalidAmount):
            await LeaveService.apply_leave(db, emp.id, _apply(category, amount))
        assert await _count_requests(db) == 0

    async def test_half_day(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id, annual_days=1)

        result = await LeaveService.apply_leave(
            db, emp.id, _apply(LeaveCategory.annual, 0.5, end=date(2026, 11, 2)),
        )
        assert result.accepted is True

    async def test_ledger_created_on_first_use(self, db: AsyncSession):
        """Employee without a ledger gets the default (60 sick days)."""
        emp = await _seed_employee(db)

        result = await LeaveService.apply_leave(db, emp.id, _apply(LeaveCategory.sick, 2))

        assert result.accepted is True
        ledger = await _load_ledger(db, emp.id)
        assert ledger.sick_days == 60
        assert ledger.annual_days == 0

    async def test_terminated_employee(self, db: AsyncSession):
        emp = await _seed_employee(db, termination_date=date(2026, 1, 31))
        await _seed_ledger(db, emp.id)

        with pytest.raises(ValidationException):
            await LeaveService.apply_leave(db, emp.id, _apply(LeaveCategory.annual, 1))

    async def test_unknown_employee(self, db: AsyncSession):
        with pytest.raises(NotFoundException):
            await LeaveService.apply_leave(db, uuid.uuid4(), _apply(LeaveCategory.annual, 1))

    async def test_audit_entry_written(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id)

        result = await LeaveService.apply_leave(db, emp.id, _apply(LeaveCategory.annual, 1))

        audit = (
            await db.execute(select(AuditTrail).where(AuditTrail.entity_id == result.request_id))
        ).scalars().one()
        assert audit.action == "create"
        assert audit.actor_id == emp.id


class TestStatutoryLeave:
    """family_event / civil_duty requests are capped by the legal table."""

    async def test_within_statutory_days(self, db: AsyncSession):
        emp = await _seed_employee(db)

        result = await LeaveService.apply_leave(
            db, emp.id, _apply(LeaveCategory.family_event, 5, sub_type="own_wedding"),
        )

        assert result.accepted is True
        assert result.request.sub_type == "own_wedding"
        # no ledger involvement at all
        assert (await db.execute(select(LeaveLedger))).scalars().first() is None

    async def test_over_statutory_days(self, db: AsyncSession):
        emp = await _seed_employee(db)
        with pytest.raises(InvalidAmount):
            await LeaveService.apply_leave(
                db, emp.id, _apply(LeaveCategory.family_event, 6, sub_type="own_wedding"),
            )

    async def test_unknown_sub_type(self, db: AsyncSession):
        emp = await _seed_employee(db)
        with pytest.raises(ValidationException) as exc_info:
            await LeaveService.apply_leave(
                db, emp.id, _apply(LeaveCategory.family_event, 1, sub_type="cousin_wedding"),
            )
        assert "normal leave category" in exc_info.value.errors["sub_type"][0]

    async def test_missing_sub_type(self, db: AsyncSession):
        emp = await _seed_employee(db)
        with pytest.raises(ValidationException):
            await LeaveService.apply_leave(db, emp.id, _apply(LeaveCategory.civil_duty, 1))

    async def test_actual_duration_capped_by_date_span(self, db: AsyncSession):
        emp = await _seed_employee(db)
        span = dict(start=date(2026, 11, 2), end=date(2026, 11, 3))

        ok = await LeaveService.apply_leave(
            db, emp.id,
            _apply(LeaveCategory.civil_duty, 2, sub_type="reserve_forces_training", **span),
        )
        assert ok.accepted is True

        with pytest.raises(InvalidAmount):
            await LeaveService.apply_leave(
                db, emp.id,
                _apply(LeaveCategory.civil_duty, 3, sub_type="reserve_forces_training", **span),
            )


# ═════════════════════════════════════════════════════════════════════
# 2. Approval / rejection
# ═════════════════════════════════════════════════════════════════════


class TestApprovalWorkflow:
    """Tests for approve_leave / reject_leave."""

    async def _pending(
        self,
        db: AsyncSession,
        category: LeaveCategory = LeaveCategory.annual,
        amount: float = 3,
        **ledger_kwargs,
    ) -> tuple[Employee, Employee, uuid.UUID]:
        emp = await _seed_employee(db)
        admin = await _seed_employee(db, full_name="HR Admin")
        await _seed_ledger(db, emp.id, **ledger_kwargs)
        result = await LeaveService.apply_leave(db, emp.id, _apply(category, amount))
        return emp, admin, result.request_id

    async def test_approve_debits_ledger(self, db: AsyncSession):
        emp, admin, req_id = await self._pending(db, annual_days=15)

        result = await LeaveService.approve_leave(db, req_id, admin.id, notes="Enjoy")

        assert result.status == LeaveStatus.approved
        assert result.processed_by == admin.id
        assert result.processed_at is not None
        assert result.admin_notes == "Enjoy"
        assert result.calendar_sync == CalendarSyncStatus.skipped
        assert (await _load_ledger(db, emp.id)).used_annual_days == 3

    async def test_approve_publishes_to_calendar(self, db: AsyncSession):
        emp, admin, req_id = await self._pending(db)
        publisher = RecordingPublisher()

        result = await LeaveService.approve_leave(db, req_id, admin.id, publisher=publisher)

        assert result.calendar_sync == CalendarSyncStatus.published
        assert len(publisher.events) == 1
        assert publisher.events[0].request_id == req_id
        assert publisher.events[0].leave_type == "annual"

    async def test_calendar_failure_keeps_approval(self, db: AsyncSession):
        emp, admin, req_id = await self._pending(db)

        result = await LeaveService.approve_leave(
            db, req_id, admin.id, publisher=RecordingPublisher(fail=True),
        )

        assert result.status == LeaveStatus.approved
        assert result.calendar_sync == CalendarSyncStatus.failed

    async def test_balance_drift_rejects_at_approval(self, db: AsyncSession):
        """Two pending 4h requests against 5h: the second approval becomes a rejection."""
        emp = await _seed_employee(db)
        admin = await _seed_employee(db, full_name="HR Admin")
        await _seed_ledger(db, emp.id, substitute_leave_hours=5.0)

        first = await LeaveService.apply_leave(db, emp.id, _apply(LeaveCategory.substitute, 4))
        second = await LeaveService.apply_leave(db, emp.id, _apply(LeaveCategory.substitute, 4))

        approved = await LeaveService.approve_leave(db, first.request_id, admin.id)
        drifted = await LeaveService.approve_leave(db, second.request_id, admin.id)

        assert approved.status == LeaveStatus.approved
        assert drifted.status == LeaveStatus.rejected
        assert drifted.processed_by == admin.id
        assert "Automatically rejected" in drifted.admin_notes
        assert "only have 1 available" in drifted.admin_notes
        assert (await _load_ledger(db, emp.id)).substitute_leave_hours == 1.0

    async def test_concurrent_approvals_spend_balance_once(self, db: AsyncSession):
        """Simultaneous approvals on separate sessions: one approved, one auto-rejected."""
        emp = await _seed_employee(db)
        admin = await _seed_employee(db, full_name="HR Admin")
        await _seed_ledger(db, emp.id, substitute_leave_hours=5.0)
        first = await LeaveService.apply_leave(db, emp.id, _apply(LeaveCategory.substitute, 4))
        second = await LeaveService.apply_leave(db, emp.id, _apply(LeaveCategory.substitute, 4))
        await db.commit()

        async with TestSessionFactory() as first_session, TestSessionFactory() as second_session:
            results = await asyncio.gather(
                LeaveService.approve_leave(first_session, first.request_id, admin.id),
                LeaveService.approve_leave(second_session, second.request_id, admin.id),
            )
            await first_session.commit()
            await second_session.commit()

        assert sorted(r.status.value for r in results) == ["approved", "rejected"]
        rejected = next(r for r in results if r.status == LeaveStatus.rejected)
        assert rejected.admin_notes.startswith("Automatically rejected at approval:")

        stored = (await db.execute(select(LeaveRequest.status))).scalars().all()
        assert sorted(s.value for s in stored) == ["approved", "rejected"]
        assert (await _load_ledger(db, emp.id)).substitute_leave_hours == 1.0

    async def test_out_of_policy_amount_rejects_at_approval(
        self, db: AsyncSession, monkeypatch,
    ):
        """A request the hour cap no longer allows is rejected with a note, not a 422."""
        emp, admin, req_id = await self._pending(
            db, LeaveCategory.substitute, 6, substitute_leave_hours=10,
        )
        monkeypatch.setattr(settings, "MAX_HOURS_PER_REQUEST", 4.0)

        result = await LeaveService.approve_leave(db, req_id, admin.id, notes="Checked")

        assert result.status == LeaveStatus.rejected
        assert result.admin_notes.startswith("Automatically rejected at approval:")
        assert "may not exceed 4 hours" in result.admin_notes
        assert result.admin_notes.endswith("Admin notes: Checked")
        assert (await _load_ledger(db, emp.id)).substitute_leave_hours == 10.0
        audit = (
            await db.execute(select(AuditTrail).where(AuditTrail.action == "auto_reject"))
        ).scalars().one()
        assert audit.new_values["requested"] == 6

    async def test_approve_already_approved_fails(self, db: AsyncSession):
        emp, admin, req_id = await self._pending(db)
        await LeaveService.approve_leave(db, req_id, admin.id)

        with pytest.raises(InvalidState):
            await LeaveService.approve_leave(db, req_id, admin.id)
        with pytest.raises(InvalidState):
            await LeaveService.reject_leave(db, req_id, admin.id)
        assert (await _load_ledger(db, emp.id)).used_annual_days == 3

    async def test_reject_leave(self, db: AsyncSession):
        emp, admin, req_id = await self._pending(db)

        result = await LeaveService.reject_leave(db, req_id, admin.id, notes="Deadline week")

        assert result.status == LeaveStatus.rejected
        assert result.admin_notes == "Deadline week"
        assert (await _load_ledger(db, emp.id)).used_annual_days == 0

        with pytest.raises(InvalidState):
            await LeaveService.approve_leave(db, req_id, admin.id)

    async def test_statutory_approval_has_no_debit(self, db: AsyncSession):
        emp = await _seed_employee(db)
        admin = await _seed_employee(db, full_name="HR Admin")
        await _seed_ledger(db, emp.id, annual_days=15)
        applied = await LeaveService.apply_leave(
            db, emp.id, _apply(LeaveCategory.family_event, 3, sub_type="grandparent_death"),
        )

        result = await LeaveService.approve_leave(db, applied.request_id, admin.id)

        assert result.status == LeaveStatus.approved
        ledger = await _load_ledger(db, emp.id)
        assert ledger.used_annual_days == 0
        assert ledger.version == 1

    async def test_approve_nonexistent_request(self, db: AsyncSession):
        with pytest.raises(NotFoundException):
            await LeaveService.approve_leave(db, uuid.uuid4(), uuid.uuid4())

    async def test_reject_nonexistent_request(self, db: AsyncSession):
        with pytest.raises(NotFoundException):
            await LeaveService.reject_leave(db, uuid.uuid4(), uuid.uuid4())


# ═════════════════════════════════════════════════════════════════════
# 3. Ledger status / availability
# ═════════════════════════════════════════════════════════════════════


class TestLeaveStatus:

    async def test_snapshot_with_day_conversions(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_ledger(
            db, emp.id,
            annual_days=15, used_annual_days=4.5,
            substitute_leave_hours=12, compensatory_leave_hours=9,
        )

        status = await LeaveService.get_leave_status(db, emp.id)

        assert status.remaining_annual_days == 10.5
        assert status.remaining_sick_days == 60
        assert status.substitute_leave_days == 1.5
        assert status.compensatory_leave_days == 1.125

    async def test_unknown_employee(self, db: AsyncSession):
        with pytest.raises(NotFoundException):
            await LeaveService.get_leave_status(db, uuid.uuid4())


# ═════════════════════════════════════════════════════════════════════
# 4. Overtime crediting
# ═════════════════════════════════════════════════════════════════════


class TestOvertimeCredit:

    async def _credit(
        self,
        db: AsyncSession,
        employee_id: uuid.UUID,
        work_date: date,
        hours: Optional[float] = None,
        classifier=None,
        **kwargs,
    ):
        data = OvertimeCreditCreate(
            employee_id=employee_id, work_date=work_date, hours_worked=hours, **kwargs,
        )
        return await LeaveService.credit_overtime(
            db, data, uuid.uuid4(), classifier or StaticHolidayClassifier(),
        )

    async def test_saturday_credits_substitute(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id)

        credit = await self._credit(db, emp.id, SATURDAY, 10)

        assert credit.day_class == DayClass.saturday
        assert credit.substitute_hours == 11.0
        ledger = await _load_ledger(db, emp.id)
        assert ledger.substitute_leave_hours == 11.0
        assert ledger.compensatory_leave_hours == 0

    async def test_sunday_credits_compensatory(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id)

        await self._credit(db, emp.id, SUNDAY, 6)

        assert (await _load_ledger(db, emp.id)).compensatory_leave_hours == 9.0

    async def test_weekday_holiday_credits_compensatory(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id)

        credit = await self._credit(
            db, emp.id, TUESDAY, 8,
            classifier=StaticHolidayClassifier({TUESDAY: "Foundation Day"}),
        )

        assert credit.day_class == DayClass.sunday_or_holiday
        assert credit.holiday_name == "Foundation Day"
        assert credit.compensatory_hours == 12.0

    async def test_weekday_recorded_without_credit(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id)

        credit = await self._credit(db, emp.id, TUESDAY, 10)

        assert credit.substitute_hours == 0
        assert credit.compensatory_hours == 0
        assert (await _load_ledger(db, emp.id)).version == 1
        rows = (await db.execute(select(OvertimeCredit))).scalars().all()
        assert len(rows) == 1

    async def test_classifier_failure_fails_open(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id)

        credit = await self._credit(db, emp.id, TUESDAY, 8, classifier=_FailingClassifier())

        assert credit.day_class == DayClass.weekday

    async def test_stay_window(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id)

        credit = await self._credit(
            db, emp.id, SATURDAY,
            start_time=datetime(2026, 10, 17, 9),
            end_time=datetime(2026, 10, 17, 21),
            had_dinner=True,
        )

        # 12h stay − 1h break − 1h dinner = 10h → 8 + 2 * 1.5
        assert credit.hours_worked == 10.0
        assert credit.substitute_hours == 11.0

    async def test_duplicate_work_date(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id)
        await self._credit(db, emp.id, SATURDAY, 4)

        with pytest.raises(ConflictError):
            await self._credit(db, emp.id, SATURDAY, 4)
        assert (await _load_ledger(db, emp.id)).substitute_leave_hours == 4.0

    async def test_unknown_employee(self, db: AsyncSession):
        with pytest.raises(NotFoundException):
            await self._credit(db, uuid.uuid4(), SATURDAY, 4)


# ═════════════════════════════════════════════════════════════════════
# 5. Manual grants
# ═════════════════════════════════════════════════════════════════════


class TestGrantLeave:

    async def test_grant_annual_days(self, db: AsyncSession):
        emp = await _seed_employee(db)
        admin = await _seed_employee(db, full_name="HR Admin")
        await _seed_ledger(db, emp.id, annual_days=15)

        result = await LeaveService.grant_leave(
            db, emp.id,
            LedgerGrantRequest(leave_type=LeaveCategory.annual, amount=2, reason="Long service"),
            admin.id,
        )

        assert result.annual_days == 17
        audit = (
            await db.execute(select(AuditTrail).where(AuditTrail.action == "grant"))
        ).scalars().one()
        assert audit.actor_id == admin.id

    async def test_grant_hours_capped(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id)

        with pytest.raises(InvalidAmount):
            await LeaveService.grant_leave(
                db, emp.id,
                LedgerGrantRequest(leave_type=LeaveCategory.substitute, amount=30, reason="x"),
                uuid.uuid4(),
            )

    async def test_grant_hours_in_tenths(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id, substitute_leave_hours=2.0)

        with pytest.raises(InvalidAmount):
            await LeaveService.grant_leave(
                db, emp.id,
                LedgerGrantRequest(leave_type=LeaveCategory.substitute, amount=0.25, reason="x"),
                uuid.uuid4(),
            )
        assert (await _load_ledger(db, emp.id)).substitute_leave_hours == 2.0

    async def test_grant_statutory_category_rejected(self, db: AsyncSession):
        emp = await _seed_employee(db)
        with pytest.raises(ValidationException):
            await LeaveService.grant_leave(
                db, emp.id,
                LedgerGrantRequest(leave_type=LeaveCategory.civil_duty, amount=1, reason="x"),
                uuid.uuid4(),
            )


class TestAdjustLedger:
    """Tests for LeaveService.adjust_ledger()."""

    async def test_reduce_granted_days_audited(self, db: AsyncSession):
        emp = await _seed_employee(db)
        admin = await _seed_employee(db, full_name="HR Admin")
        await _seed_ledger(db, emp.id, annual_days=15, used_annual_days=2)

        result = await LeaveService.adjust_ledger(
            db, emp.id,
            LedgerAdjustRequest(
                leave_type=LeaveCategory.annual,
                target=AdjustmentTarget.granted,
                delta=-3,
                reason="Entered twice",
            ),
            admin.id,
        )

        assert result.annual_days == 12
        assert result.remaining_annual_days == 10
        audit = (
            await db.execute(select(AuditTrail).where(AuditTrail.action == "adjust"))
        ).scalars().one()
        assert audit.actor_id == admin.id
        assert audit.entity_id == emp.id
        assert audit.old_values == {"annual_days": 15}
        assert audit.new_values["annual_days"] == 12
        assert audit.new_values["reason"] == "Entered twice"

    async def test_correct_used_days(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id, sick_days=60, used_sick_days=4)

        result = await LeaveService.adjust_ledger(
            db, emp.id,
            LedgerAdjustRequest(
                leave_type=LeaveCategory.sick, target=AdjustmentTarget.used,
                delta=-1.5, reason="Half day logged as two",
            ),
            uuid.uuid4(),
        )

        assert result.used_sick_days == 2.5
        assert (await _load_ledger(db, emp.id)).used_sick_days == 2.5

    async def test_take_back_hours(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id, compensatory_leave_hours=6.0)

        result = await LeaveService.adjust_ledger(
            db, emp.id,
            LedgerAdjustRequest(
                leave_type=LeaveCategory.compensatory, delta=-2.5, reason="Wrong day",
            ),
            uuid.uuid4(),
        )

        assert result.compensatory_leave_hours == 3.5

    async def test_cannot_drive_hours_negative(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id, substitute_leave_hours=1.0)

        with pytest.raises(InvalidAmount):
            await LeaveService.adjust_ledger(
                db, emp.id,
                LedgerAdjustRequest(leave_type=LeaveCategory.substitute, delta=-2, reason="x"),
                uuid.uuid4(),
            )
        assert (await _load_ledger(db, emp.id)).substitute_leave_hours == 1.0

    async def test_used_cannot_exceed_granted(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id, annual_days=10, used_annual_days=9)

        with pytest.raises(InvalidAmount):
            await LeaveService.adjust_ledger(
                db, emp.id,
                LedgerAdjustRequest(
                    leave_type=LeaveCategory.annual, target=AdjustmentTarget.granted,
                    delta=-2, reason="x",
                ),
                uuid.uuid4(),
            )
        assert (await _load_ledger(db, emp.id)).annual_days == 10

    async def test_statutory_category_rejected(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_ledger(db, emp.id)

        with pytest.raises(ValidationException):
            await LeaveService.adjust_ledger(
                db, emp.id,
                LedgerAdjustRequest(
                    leave_type=LeaveCategory.family_event, target=AdjustmentTarget.granted,
                    delta=1, reason="x",
                ),
                uuid.uuid4(),
            )

    async def test_unknown_employee(self, db: AsyncSession):
        with pytest.raises(NotFoundException):
            await LeaveService.adjust_ledger(
                db, uuid.uuid4(),
                LedgerAdjustRequest(leave_type=LeaveCategory.substitute, delta=1, reason="x"),
                uuid.uuid4(),
            )


# ═════════════════════════════════════════════════════════════════════
# 6. Annual accrual run
# ═════════════════════════════════════════════════════════════════════


class TestAnnualAccrual:

    async def test_run_resets_period(self, db: AsyncSession):
        veteran = await _seed_employee(db, hire_date=date(2020, 3, 2))
        await _seed_ledger(
            db, veteran.id,
            annual_days=15, used_annual_days=7, used_sick_days=10, substitute_leave_hours=6,
        )
        newcomer = await _seed_employee(db, hire_date=date(2025, 7, 1))
        no_hire_date = await _seed_employee(db, hire_date=None)
        leaver = await _seed_employee(db, termination_date=date(2025, 12, 31))
        await _seed_ledger(db, leaver.id, annual_days=15, used_annual_days=15)

        result = await LeaveService.run_annual_accrual(db, date(2026, 1, 1))

        assert result.processed == 2
        assert result.updated == 2
        assert result.skipped == [no_hire_date.id]

        vet_ledger = await _load_ledger(db, veteran.id)
        assert vet_ledger.annual_days == 17        # 6 years → 15 + 5 // 2
        assert vet_ledger.used_annual_days == 0
        assert vet_ledger.sick_days == 60
        assert vet_ledger.used_sick_days == 0
        assert vet_ledger.substitute_leave_hours == 6

        assert (await _load_ledger(db, newcomer.id)).annual_days == 14

        leaver_ledger = await _load_ledger(db, leaver.id)
        assert leaver_ledger.used_annual_days == 15

    async def test_rerun_is_a_no_op(self, db: AsyncSession):
        emp = await _seed_employee(db, hire_date=date(2020, 3, 2))
        await _seed_ledger(db, emp.id, used_annual_days=3)

        await LeaveService.run_annual_accrual(db, date(2026, 1, 1))
        again = await LeaveService.run_annual_accrual(db, date(2026, 1, 1))

        assert again.processed == 1
        assert again.updated == 0


# ═════════════════════════════════════════════════════════════════════
# 7. Promotion scan
# ═════════════════════════════════════════════════════════════════════


class TestPromotionTargets:

    async def test_scan_flags_remaining_five_or_more(self, db: AsyncSession):
        flagged = await _seed_employee(db, hire_date=date(2023, 6, 1))
        await _seed_ledger(db, flagged.id, annual_days=15, used_annual_days=9)
        mostly_used = await _seed_employee(db, hire_date=date(2023, 6, 1))
        await _seed_ledger(db, mostly_used.id, annual_days=15, used_annual_days=11)
        leaver = await _seed_employee(db, hire_date=date(2023, 6, 1), termination_date=date(2024, 5, 1))
        await _seed_ledger(db, leaver.id, annual_days=15)

        targets = await LeaveService.find_promotion_targets(db, date(2024, 6, 1))

        assert [t.employee_id for t in targets] == [flagged.id]
        assert targets[0].working_months == 12
        assert targets[0].remaining_days == 6

    async def test_status_without_ledger(self, db: AsyncSession):
        emp = await _seed_employee(db, hire_date=date(2023, 6, 1))

        status = await LeaveService.get_promotion_status(db, emp.id, date(2024, 6, 1))

        assert status.is_target is False
        assert status.working_months == 12


# ═════════════════════════════════════════════════════════════════════
# 8. API endpoints
# ═════════════════════════════════════════════════════════════════════


class TestLeaveAPI:

    async def test_apply_approve_status_flow(
        self, client, db, test_employee, hr_admin, auth_headers, admin_headers, publisher,
    ):
        await _seed_ledger(db, test_employee["id"], annual_days=15)
        await db.commit()

        resp = await client.post(
            "/api/v1/leave/apply",
            json={
                "leave_type": "annual",
                "amount": 2,
                "start_date": "2026-11-02",
                "end_date": "2026-11-03",
                "reason": "Family trip",
            },
            headers=auth_headers,
        )
        assert resp.status_code == 201
        request_id = resp.json()["request_id"]
        assert resp.json()["accepted"] is True

        resp = await client.put(
            f"/api/v1/leave/requests/{request_id}/approve",
            json={"notes": "ok"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "approved"
        assert resp.json()["calendar_sync"] == "published"
        assert len(publisher.events) == 1

        resp = await client.get("/api/v1/leave/status", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["used_annual_days"] == 2
        assert resp.json()["remaining_annual_days"] == 13

    async def test_apply_insufficient_is_problem_detail(
        self, client, db, test_employee, auth_headers,
    ):
        await _seed_ledger(db, test_employee["id"], substitute_leave_hours=4.5)
        await db.commit()

        resp = await client.post(
            "/api/v1/leave/apply",
            json={
                "leave_type": "substitute",
                "amount": 6,
                "start_date": "2026-11-02",
                "end_date": "2026-11-02",
            },
            headers=auth_headers,
        )

        assert resp.status_code == 422
        assert resp.headers["content-type"].startswith("application/problem+json")
        body = resp.json()
        assert body["type"].endswith("/insufficient-balance")
        assert body["available"] == 4.5
        assert body["requested"] == 6
        assert body["unit"] == "hours"

        async with TestSessionFactory() as session:
            assert await _count_requests(session) == 0

    async def test_employee_cannot_approve(self, client, db, test_employee, auth_headers):
        await _seed_ledger(db, test_employee["id"])
        await db.commit()
        applied = await client.post(
            "/api/v1/leave/apply",
            json={"leave_type": "sick", "amount": 1, "start_date": "2026-11-02", "end_date": "2026-11-02"},
            headers=auth_headers,
        )

        resp = await client.put(
            f"/api/v1/leave/requests/{applied.json()['request_id']}/approve",
            headers=auth_headers,
        )
        assert resp.status_code == 403

    async def test_double_approval_conflict(
        self, client, db, test_employee, hr_admin, auth_headers, admin_headers,
    ):
        await _seed_ledger(db, test_employee["id"])
        await db.commit()
        applied = await client.post(
            "/api/v1/leave/apply",
            json={"leave_type": "sick", "amount": 1, "start_date": "2026-11-02", "end_date": "2026-11-02"},
            headers=auth_headers,
        )
        url = f"/api/v1/leave/requests/{applied.json()['request_id']}/approve"

        assert (await client.put(url, headers=admin_headers)).status_code == 200
        resp = await client.put(url, headers=admin_headers)
        assert resp.status_code == 409
        assert resp.json()["type"].endswith("/invalid-state")

    async def test_list_own_requests(self, client, db, test_employee, hr_admin, auth_headers):
        await _seed_ledger(db, test_employee["id"])
        await db.commit()
        for _ in range(2):
            await client.post(
                "/api/v1/leave/apply",
                json={"leave_type": "sick", "amount": 1, "start_date": "2026-11-02", "end_date": "2026-11-02"},
                headers=auth_headers,
            )

        resp = await client.get("/api/v1/leave/requests", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["meta"]["total"] == 2

        resp = await client.get(
            f"/api/v1/leave/requests?employee_id={hr_admin['id']}", headers=auth_headers,
        )
        assert resp.status_code == 403

    async def test_availability(self, client, db, test_employee, auth_headers):
        await _seed_ledger(db, test_employee["id"], compensatory_leave_hours=4.5)
        await db.commit()

        resp = await client.post(
            "/api/v1/leave/availability",
            json={"leave_type": "compensatory", "amount": 4},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["can_apply"] is True
        assert resp.json()["available"] == 4.5

    async def test_overtime_on_holiday(
        self, client, db, test_employee, hr_admin, admin_headers, holidays,
    ):
        holidays[TUESDAY] = "Foundation Day"
        await db.commit()

        resp = await client.post(
            "/api/v1/leave/overtime",
            json={
                "employee_id": str(test_employee["id"]),
                "work_date": TUESDAY.isoformat(),
                "hours_worked": 6,
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json()["day_class"] == "sunday_or_holiday"
        assert resp.json()["compensatory_hours"] == 9.0

        resp = await client.get(
            f"/api/v1/leave/status/{test_employee['id']}", headers=admin_headers,
        )
        assert resp.json()["compensatory_leave_hours"] == 9.0

    async def test_overtime_requires_hr(self, client, test_employee, auth_headers):
        resp = await client.post(
            "/api/v1/leave/overtime",
            json={
                "employee_id": str(test_employee["id"]),
                "work_date": SATURDAY.isoformat(),
                "hours_worked": 6,
            },
            headers=auth_headers,
        )
        assert resp.status_code == 403

    async def test_accrual_run(self, client, db, test_employee, hr_admin, admin_headers):
        await db.commit()

        resp = await client.post(
            "/api/v1/leave/accrual/run", json={"as_of": "2026-01-01"}, headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["processed"] == 2

    async def test_adjust_ledger_hr_only(
        self, client, db, test_employee, hr_admin, auth_headers, admin_headers,
    ):
        await _seed_ledger(db, test_employee["id"], annual_days=15, used_annual_days=5)
        await db.commit()
        url = f"/api/v1/leave/ledger/{test_employee['id']}/adjust"
        body = {"leave_type": "annual", "target": "used", "delta": -1, "reason": "Public holiday"}

        resp = await client.post(url, json=body, headers=auth_headers)
        assert resp.status_code == 403

        resp = await client.post(url, json=body, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["used_annual_days"] == 4
        assert resp.json()["remaining_annual_days"] == 11

        resp = await client.post(
            url, json={**body, "delta": -10}, headers=admin_headers,
        )
        assert resp.status_code == 422
        assert resp.json()["type"].endswith("/invalid-amount")

    async def test_legal_entitlements(self, client, test_employee, auth_headers):
        resp = await client.get(
            "/api/v1/leave/legal-entitlements?category=civil_duty", headers=auth_headers,
        )
        assert resp.status_code == 200
        days = {e["sub_type"]: e["days"] for e in resp.json()}
        assert days["election_voting"] == 1
        assert days["court_appearance"] == "actual_duration"

    async def test_requires_auth(self, client):
        resp = await client.get("/api/v1/leave/status")
        assert resp.status_code == 401

    async def test_expired_token(self, client, test_employee):
        from tests.conftest import create_access_token

        token = create_access_token(test_employee["id"], expired=True)
        resp = await client.get(
            "/api/v1/leave/status", headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 401

    async def test_system_admin_inherits_hr_access(self, client, db, test_employee):
        await db.commit()
        headers = _make_auth_headers(uuid.uuid4(), role=UserRole.system_admin)
        resp = await client.get(
            f"/api/v1/leave/status/{test_employee['id']}", headers=headers,
        )
        assert resp.status_code == 200

    async def test_health(self, client):
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
