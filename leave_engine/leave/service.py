"""Leave service layer — request lifecycle, overtime crediting, grants, accrual, promotion.

Business logic:
  - Submission checks the balance optimistically and rejects before any row exists
  - Approval re-checks authoritatively via the ledger debit; drift turns into a rejection
  - Overtime on rest days is converted to substitute / compensatory hours
  - Annual accrual run resets the day-counted period for every active employee
  - Promotion scan flags employees who must be prompted to use annual leave
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_engine.common.audit import create_audit_entry
from leave_engine.common.constants import (
    DAY_AMOUNT_STEP,
    AdjustmentTarget,
    LeaveCategory,
    LeaveStatus,
)
from leave_engine.common.exceptions import (
    ConflictError,
    InsufficientBalance,
    InvalidAmount,
    InvalidState,
    NotFoundException,
    ValidationException,
)
from leave_engine.common.pagination import PaginatedResponse, PaginationParams, paginate
from leave_engine.config import settings
from leave_engine.core_hr.models import Employee
from leave_engine.holidays.classifier import HolidayClassifier, classify_day
from leave_engine.leave.accrual import calculate_annual_leave
from leave_engine.leave.ledger import (
    LedgerService,
    SqlLedgerStore,
    record_to_values,
    validate_amount,
)
from leave_engine.leave.legal import LEGAL_ENTITLEMENTS, get_legal_entitlement, list_sub_types
from leave_engine.leave.models import LeaveLedger, LeaveRequest, OvertimeCredit
from leave_engine.leave.overtime import convert_overtime, worked_hours_from_stay
from leave_engine.leave.promotion import is_promotion_target, remaining_annual_days, working_months
from leave_engine.leave.schemas import (
    AccrualRunOut,
    AvailabilityOut,
    AvailabilityRequest,
    LeaveApplicationOut,
    LeaveApplyRequest,
    LedgerAdjustRequest,
    LedgerGrantRequest,
    LedgerOut,
    LedgerRecord,
    LeaveRequestOut,
    LegalEntitlementOut,
    OvertimeCreditCreate,
    OvertimeCreditOut,
    PromotionStatusOut,
)
from leave_engine.leave.units import hours_to_days
from leave_engine.notifications.calendar import (
    ApprovedLeaveEvent,
    CalendarPublisher,
    NullCalendarPublisher,
    publish_approved_leave,
)

logger = logging.getLogger(__name__)

# Ledger column an HR adjustment changes, by (category, target)
_ADJUSTED_FIELDS: dict[tuple[LeaveCategory, Optional[AdjustmentTarget]], str] = {
    (LeaveCategory.annual, AdjustmentTarget.granted): "annual_days",
    (LeaveCategory.annual, AdjustmentTarget.used): "used_annual_days",
    (LeaveCategory.sick, AdjustmentTarget.granted): "sick_days",
    (LeaveCategory.sick, AdjustmentTarget.used): "used_sick_days",
    (LeaveCategory.substitute, None): "substitute_leave_hours",
    (LeaveCategory.compensatory, None): "compensatory_leave_hours",
}


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: ledger reads, requests, approvals, credits, accrual."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _ledger(db: AsyncSession) -> LedgerService:
        return LedgerService(SqlLedgerStore(db))

    @staticmethod
    async def _get_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        result = await db.execute(select(Employee).where(Employee.id == employee_id))
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    @staticmethod
    async def _get_request_for_update(
        db: AsyncSession,
        request_id: uuid.UUID,
    ) -> LeaveRequest:
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        leave_req = result.scalars().first()
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        if leave_req.status != LeaveStatus.pending:
            raise InvalidState("LeaveRequest", request_id, leave_req.status.value)
        return leave_req

    @staticmethod
    def _build_ledger_response(record: LedgerRecord) -> LedgerOut:
        return LedgerOut(
            employee_id=record.employee_id,
            annual_days=record.annual.entitlement,
            used_annual_days=record.annual.used,
            remaining_annual_days=record.annual.available,
            sick_days=record.sick.entitlement,
            used_sick_days=record.sick.used,
            remaining_sick_days=record.sick.available,
            substitute_leave_hours=record.substitute.hours,
            substitute_leave_days=hours_to_days(record.substitute.hours),
            compensatory_leave_hours=record.compensatory.hours,
            compensatory_leave_days=hours_to_days(record.compensatory.hours),
            version=record.version,
        )

    @staticmethod
    def _validate_legal_request(data: LeaveApplyRequest) -> None:
        """Statutory leave draws no balance; it is capped by the legal table instead."""
        category = data.leave_type
        amount = data.amount
        if not math.isfinite(amount) or amount <= 0:
            raise InvalidAmount(f"Amount must be a positive number, got {amount}.")
        if not (amount / DAY_AMOUNT_STEP).is_integer():
            raise InvalidAmount(f"Day amounts must be whole or half days, got {amount:g}.")

        if not data.sub_type:
            raise ValidationException(
                {"sub_type": [
                    f"{category.value} leave requires a sub_type, one of: "
                    f"{', '.join(list_sub_types(category))}."
                ]}
            )

        entitlement = get_legal_entitlement(category, data.sub_type)
        if entitlement is None:
            raise ValidationException(
                {"sub_type": [
                    f"'{data.sub_type}' carries no statutory {category.value} entitlement. "
                    "Apply under a normal leave category instead."
                ]}
            )

        if entitlement.is_actual_duration:
            cap = (data.end_date - data.start_date).days + 1
        else:
            cap = entitlement.days
        if amount > cap:
            raise InvalidAmount(
                f"{entitlement.description} allows at most {cap} days, "
                f"you asked for {amount:g}."
            )

    # ─────────────────────────────────────────────────────────────────
    # Ledger reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave_status(db: AsyncSession, employee_id: uuid.UUID) -> LedgerOut:
        """Current ledger snapshot; creates the default ledger on first access."""
        record = await LeaveService._ledger(db).snapshot(employee_id)
        return LeaveService._build_ledger_response(record)

    @staticmethod
    async def check_availability(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: AvailabilityRequest,
    ) -> AvailabilityOut:
        return await LeaveService._ledger(db).availability(
            employee_id, data.leave_type, data.amount,
        )

    # ─────────────────────────────────────────────────────────────────
    # Apply
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def apply_leave(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: LeaveApplyRequest,
    ) -> LeaveApplicationOut:
        """Submit a leave request.

        Every failure is raised before the request row is created, so a
        rejected submission leaves nothing behind.
        """
        employee = await LeaveService._get_employee(db, employee_id)
        if employee.is_terminated or not employee.is_active:
            raise ValidationException(
                {"employee_id": ["Terminated or inactive employees cannot apply for leave."]}
            )

        category = data.leave_type
        sub_type: Optional[str] = None

        if category.is_legal:
            LeaveService._validate_legal_request(data)
            sub_type = data.sub_type
        else:
            validate_amount(category, data.amount)
            check = await LeaveService._ledger(db).availability(
                employee_id, category, data.amount,
            )
            if not check.can_apply:
                raise InsufficientBalance(
                    category.value, data.amount, check.available, category.unit.value,
                )

        leave_req = LeaveRequest(
            employee_id=employee_id,
            leave_type=category,
            sub_type=sub_type,
            requested_amount=data.amount,
            unit=category.unit,
            start_date=data.start_date,
            end_date=data.end_date,
            reason=data.reason,
            status=LeaveStatus.pending,
        )
        db.add(leave_req)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=employee_id,
            new_values={
                "leave_type": category.value,
                "sub_type": sub_type,
                "amount": data.amount,
                "unit": category.unit.value,
                "start_date": data.start_date.isoformat(),
                "end_date": data.end_date.isoformat(),
                "status": LeaveStatus.pending.value,
            },
        )
        logger.info(
            "Leave request %s submitted: %g %s of %s for employee %s",
            leave_req.id, data.amount, category.unit.value, category.value, employee_id,
        )

        return LeaveApplicationOut(
            accepted=True,
            request_id=leave_req.id,
            message="Leave request submitted and awaiting approval.",
            request=LeaveRequestOut.model_validate(leave_req),
        )

    # ─────────────────────────────────────────────────────────────────
    # Approve / Reject
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        admin_id: uuid.UUID,
        *,
        notes: Optional[str] = None,
        publisher: Optional[CalendarPublisher] = None,
    ) -> LeaveRequestOut:
        """Approve a pending request, debiting the ledger in the same transaction.

        If the balance no longer covers the request, the request is rejected
        with an explanation instead.
        """
        leave_req = await LeaveService._get_request_for_update(db, request_id)
        now = datetime.now(timezone.utc)
        category = leave_req.leave_type

        if category.is_ledger_backed:
            try:
                await LeaveService._ledger(db).debit(
                    leave_req.employee_id, category, leave_req.requested_amount,
                )
            except InsufficientBalance as exc:
                logger.info(
                    "Leave request %s rejected at approval: balance drifted to %g %s",
                    leave_req.id, exc.available, exc.unit,
                )
                return await LeaveService._auto_reject(
                    db, leave_req, admin_id, now, exc.detail, notes,
                    extra={"available": exc.available, "requested": exc.requested},
                )
            except InvalidAmount as exc:
                logger.info(
                    "Leave request %s rejected at approval: %s", leave_req.id, exc.detail,
                )
                return await LeaveService._auto_reject(
                    db, leave_req, admin_id, now, exc.detail, notes,
                    extra={"requested": leave_req.requested_amount},
                )

        leave_req.status = LeaveStatus.approved
        leave_req.processed_at = now
        leave_req.processed_by = admin_id
        leave_req.admin_notes = notes
        await db.flush()

        await create_audit_entry(
            db,
            action="approve",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=admin_id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.approved.value, "notes": notes},
        )
        logger.info("Leave request %s approved by %s", leave_req.id, admin_id)

        out = LeaveRequestOut.model_validate(leave_req)
        out.calendar_sync = await publish_approved_leave(
            publisher or NullCalendarPublisher(),
            ApprovedLeaveEvent(
                request_id=leave_req.id,
                employee_id=leave_req.employee_id,
                leave_type=category.value,
                amount=leave_req.requested_amount,
                unit=leave_req.unit.value,
                start_date=leave_req.start_date,
                end_date=leave_req.end_date,
                reason=leave_req.reason,
            ),
        )
        return out

    @staticmethod
    async def _auto_reject(
        db: AsyncSession,
        leave_req: LeaveRequest,
        admin_id: uuid.UUID,
        now: datetime,
        reason: str,
        notes: Optional[str],
        *,
        extra: dict,
    ) -> LeaveRequestOut:
        """Turn an approval the ledger refused into a rejection that says why."""
        leave_req.status = LeaveStatus.rejected
        leave_req.processed_at = now
        leave_req.processed_by = admin_id
        leave_req.admin_notes = f"Automatically rejected at approval: {reason}"
        if notes:
            leave_req.admin_notes += f" Admin notes: {notes}"
        await db.flush()

        await create_audit_entry(
            db,
            action="auto_reject",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=admin_id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.rejected.value, **extra},
        )
        return LeaveRequestOut.model_validate(leave_req)

    @staticmethod
    async def reject_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        admin_id: uuid.UUID,
        *,
        notes: Optional[str] = None,
    ) -> LeaveRequestOut:
        """Reject a pending request. No ledger mutation."""
        leave_req = await LeaveService._get_request_for_update(db, request_id)

        leave_req.status = LeaveStatus.rejected
        leave_req.processed_at = datetime.now(timezone.utc)
        leave_req.processed_by = admin_id
        leave_req.admin_notes = notes
        await db.flush()

        await create_audit_entry(
            db,
            action="reject",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=admin_id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.rejected.value, "notes": notes},
        )
        logger.info("Leave request %s rejected by %s", leave_req.id, admin_id)
        return LeaveRequestOut.model_validate(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Listing
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_leave_requests(
        db: AsyncSession,
        params: PaginationParams,
        *,
        employee_id: Optional[uuid.UUID] = None,
        status: Optional[LeaveStatus] = None,
    ) -> PaginatedResponse:
        """Paginated leave requests, newest first."""
        query = select(LeaveRequest).order_by(LeaveRequest.submitted_at.desc())
        if employee_id is not None:
            query = query.where(LeaveRequest.employee_id == employee_id)
        if status is not None:
            query = query.where(LeaveRequest.status == status)
        return await paginate(db, query, params, transform=LeaveRequestOut.model_validate)

    # ─────────────────────────────────────────────────────────────────
    # Overtime credit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def credit_overtime(
        db: AsyncSession,
        data: OvertimeCreditCreate,
        actor_id: uuid.UUID,
        classifier: HolidayClassifier,
    ) -> OvertimeCreditOut:
        """Convert one worked day into leave hours and credit the ledger."""
        await LeaveService._get_employee(db, data.employee_id)

        dup = await db.execute(
            select(OvertimeCredit.id).where(
                OvertimeCredit.employee_id == data.employee_id,
                OvertimeCredit.work_date == data.work_date,
            )
        )
        if dup.scalar() is not None:
            raise ConflictError("work_date", data.work_date.isoformat())

        if data.hours_worked is not None:
            hours = data.hours_worked
        else:
            hours = worked_hours_from_stay(data.start_time, data.end_time, data.had_dinner)

        classification = await classify_day(
            data.work_date, classifier, timeout=settings.HOLIDAY_TIMEOUT_SECONDS,
        )
        conversion = convert_overtime(classification.day_class, hours)

        ledger = LeaveService._ledger(db)
        source = f"overtime:{data.work_date.isoformat()}"
        if conversion.substitute_hours > 0:
            await ledger.credit(
                data.employee_id, LeaveCategory.substitute, conversion.substitute_hours, source,
            )
        if conversion.compensatory_hours > 0:
            await ledger.credit(
                data.employee_id, LeaveCategory.compensatory, conversion.compensatory_hours, source,
            )

        credit = OvertimeCredit(
            employee_id=data.employee_id,
            work_date=data.work_date,
            day_class=classification.day_class,
            holiday_name=classification.holiday_name,
            hours_worked=hours,
            substitute_hours=conversion.substitute_hours,
            compensatory_hours=conversion.compensatory_hours,
            created_by=actor_id,
        )
        db.add(credit)
        await db.flush()

        await create_audit_entry(
            db,
            action="credit",
            entity_type="overtime_credit",
            entity_id=credit.id,
            actor_id=actor_id,
            new_values={
                "employee_id": str(data.employee_id),
                "work_date": data.work_date.isoformat(),
                "day_class": classification.day_class.value,
                "hours_worked": hours,
                "substitute_hours": conversion.substitute_hours,
                "compensatory_hours": conversion.compensatory_hours,
            },
        )
        return OvertimeCreditOut.model_validate(credit)

    # ─────────────────────────────────────────────────────────────────
    # Manual grant
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def grant_leave(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: LedgerGrantRequest,
        actor_id: uuid.UUID,
    ) -> LedgerOut:
        """HR credit of any ledger-backed category."""
        category = data.leave_type
        if category.is_legal:
            raise ValidationException(
                {"leave_type": [f"{category.value} leave is not tracked on the ledger."]}
            )
        validate_amount(category, data.amount)

        before = await LeaveService._ledger(db).snapshot(employee_id)
        record = await LeaveService._ledger(db).credit(
            employee_id, category, data.amount, source=f"grant:{actor_id}",
        )

        await create_audit_entry(
            db,
            action="grant",
            entity_type="leave_ledger",
            entity_id=employee_id,
            actor_id=actor_id,
            old_values={category.value: before.available(category)},
            new_values={
                category.value: record.available(category),
                "amount": data.amount,
                "reason": data.reason,
            },
        )
        return LeaveService._build_ledger_response(record)

    @staticmethod
    async def adjust_ledger(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: LedgerAdjustRequest,
        actor_id: uuid.UUID,
    ) -> LedgerOut:
        """HR correction of a granted entitlement, used days or an hour balance."""
        await LeaveService._get_employee(db, employee_id)
        category = data.leave_type
        ledger = LeaveService._ledger(db)

        before = await ledger.snapshot(employee_id)
        record = await ledger.adjust(
            employee_id, category, data.delta,
            target=data.target, source=f"adjust:{actor_id}",
        )

        field = _ADJUSTED_FIELDS[(category, data.target)]
        await create_audit_entry(
            db,
            action="adjust",
            entity_type="leave_ledger",
            entity_id=employee_id,
            actor_id=actor_id,
            old_values={field: record_to_values(before)[field]},
            new_values={
                field: record_to_values(record)[field],
                "delta": data.delta,
                "reason": data.reason,
            },
        )
        return LeaveService._build_ledger_response(record)

    # ─────────────────────────────────────────────────────────────────
    # Annual accrual run
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def run_annual_accrual(
        db: AsyncSession,
        as_of: Optional[date] = None,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> AccrualRunOut:
        """Recompute annual entitlement for every active employee and open a new period.

        Used days go back to 0 and sick days to the yearly default. Employees
        without a hire date are skipped.
        """
        as_of = as_of or date.today()
        ledger = LeaveService._ledger(db)

        result = await db.execute(
            select(Employee)
            .where(Employee.is_active.is_(True), Employee.termination_date.is_(None))
            .order_by(Employee.employee_code)
        )
        employees = result.scalars().all()

        processed = 0
        updated = 0
        skipped: list[uuid.UUID] = []

        for emp in employees:
            if emp.hire_date is None:
                logger.info("Skipping accrual for %s: no hire date", emp.employee_code)
                skipped.append(emp.id)
                continue

            processed += 1
            annual_days = calculate_annual_leave(emp.hire_date, as_of)
            sick_days = settings.DEFAULT_SICK_DAYS

            before = await ledger.snapshot(emp.id)
            unchanged = (
                before.annual.entitlement == annual_days
                and before.annual.used == 0
                and before.sick.entitlement == sick_days
                and before.sick.used == 0
            )
            if unchanged:
                continue

            await ledger.reset_period(emp.id, annual_days=annual_days, sick_days=sick_days)
            updated += 1

            await create_audit_entry(
                db,
                action="accrue",
                entity_type="leave_ledger",
                entity_id=emp.id,
                actor_id=actor_id,
                old_values={
                    "annual_days": before.annual.entitlement,
                    "used_annual_days": before.annual.used,
                    "sick_days": before.sick.entitlement,
                    "used_sick_days": before.sick.used,
                },
                new_values={
                    "annual_days": annual_days,
                    "used_annual_days": 0,
                    "sick_days": sick_days,
                    "used_sick_days": 0,
                    "as_of": as_of.isoformat(),
                },
            )

        logger.info(
            "Annual accrual as of %s: %d processed, %d updated, %d skipped",
            as_of, processed, updated, len(skipped),
        )
        return AccrualRunOut(as_of=as_of, processed=processed, updated=updated, skipped=skipped)

    # ─────────────────────────────────────────────────────────────────
    # Promotion targets
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _build_promotion_response(
        emp: Employee,
        ledger: Optional[LeaveLedger],
        today: date,
    ) -> PromotionStatusOut:
        months = working_months(emp.hire_date, today) if emp.hire_date else 0
        remaining = remaining_annual_days(ledger) if ledger else 0.0
        return PromotionStatusOut(
            employee_id=emp.id,
            employee_code=emp.employee_code,
            full_name=emp.full_name,
            hire_date=emp.hire_date,
            working_months=months,
            remaining_days=remaining,
            is_target=(
                not emp.is_terminated
                and is_promotion_target(emp.hire_date, ledger, today)
            ),
        )

    @staticmethod
    async def find_promotion_targets(
        db: AsyncSession,
        today: Optional[date] = None,
    ) -> list[PromotionStatusOut]:
        """Active employees who must be prompted to use their remaining annual leave."""
        today = today or date.today()
        result = await db.execute(
            select(Employee, LeaveLedger)
            .join(LeaveLedger, LeaveLedger.employee_id == Employee.id)
            .where(Employee.is_active.is_(True), Employee.termination_date.is_(None))
            .order_by(Employee.employee_code)
            .execution_options(populate_existing=True)
        )
        statuses = [
            LeaveService._build_promotion_response(emp, ledger, today)
            for emp, ledger in result.all()
        ]
        return [s for s in statuses if s.is_target]

    @staticmethod
    async def get_promotion_status(
        db: AsyncSession,
        employee_id: uuid.UUID,
        today: Optional[date] = None,
    ) -> PromotionStatusOut:
        employee = await LeaveService._get_employee(db, employee_id)
        result = await db.execute(
            select(LeaveLedger).where(LeaveLedger.employee_id == employee_id)
            .execution_options(populate_existing=True)
        )
        return LeaveService._build_promotion_response(
            employee, result.scalars().first(), today or date.today(),
        )

    # ─────────────────────────────────────────────────────────────────
    # Statutory table
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def list_legal_entitlements(
        category: Optional[LeaveCategory] = None,
    ) -> list[LegalEntitlementOut]:
        return [
            LegalEntitlementOut.model_validate(e)
            for e in LEGAL_ENTITLEMENTS
            if category is None or e.category == category
        ]
