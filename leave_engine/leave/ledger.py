"""Entitlement ledger — storage interface, SQL and in-memory stores, LedgerService.

Every balance change goes through ``LedgerService``. Writes for one employee run
under a per-employee lock and are saved with a compare-and-swap on ``version``;
a stale save reloads and retries up to ``LEDGER_MAX_RETRIES`` times.
"""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leave_engine.common.constants import (
    DAY_AMOUNT_STEP,
    HOUR_AMOUNT_STEP,
    AdjustmentTarget,
    LeaveCategory,
    LeaveUnit,
)
from leave_engine.common.exceptions import (
    InsufficientBalance,
    InvalidAmount,
    LedgerConflict,
    NotFoundException,
    ValidationException,
)
from leave_engine.common.locks import KeyedLock
from leave_engine.config import settings
from leave_engine.core_hr.models import Employee
from leave_engine.leave.models import LeaveLedger
from leave_engine.leave.schemas import AvailabilityOut, DayBalance, HourBalance, LedgerRecord
from leave_engine.leave.units import round_hours

logger = logging.getLogger(__name__)

# Float tolerance when comparing balances stored at one decimal place
_EPSILON = 1e-9


class StaleLedgerError(Exception):
    """The stored ledger version moved on since the record was loaded."""


# ── Storage interface ───────────────────────────────────────────────

class LedgerStore(Protocol):
    async def load(self, employee_id: uuid.UUID) -> LedgerRecord:
        """Return the current record; raise NotFoundException for unknown employees."""
        ...

    async def save(self, employee_id: uuid.UUID, record: LedgerRecord) -> LedgerRecord:
        """Persist *record* if the stored version still equals ``record.version``.

        Returns the record with its bumped version; raises ``StaleLedgerError``
        otherwise.
        """
        ...


def _row_to_record(row: LeaveLedger) -> LedgerRecord:
    return LedgerRecord(
        employee_id=row.employee_id,
        annual=DayBalance(entitlement=row.annual_days, used=float(row.used_annual_days)),
        sick=DayBalance(entitlement=row.sick_days, used=float(row.used_sick_days)),
        substitute=HourBalance(hours=float(row.substitute_leave_hours)),
        compensatory=HourBalance(hours=float(row.compensatory_leave_hours)),
        version=row.version,
    )


def record_to_values(record: LedgerRecord) -> dict:
    """Ledger column values for *record*, keyed by ``leave_ledgers`` column name."""
    return {
        "annual_days": record.annual.entitlement,
        "used_annual_days": record.annual.used,
        "sick_days": record.sick.entitlement,
        "used_sick_days": record.sick.used,
        "substitute_leave_hours": record.substitute.hours,
        "compensatory_leave_hours": record.compensatory.hours,
    }


class SqlLedgerStore:
    """Ledger rows in ``leave_ledgers``; loads lock the row until the transaction ends."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _select(self, employee_id: uuid.UUID, *, for_update: bool) -> Optional[LeaveLedger]:
        query = select(LeaveLedger).where(LeaveLedger.employee_id == employee_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query.execution_options(populate_existing=True))
        return result.scalars().first()

    async def peek(self, employee_id: uuid.UUID) -> Optional[LedgerRecord]:
        """Read without locking or creating."""
        row = await self._select(employee_id, for_update=False)
        return _row_to_record(row) if row else None

    async def load(self, employee_id: uuid.UUID) -> LedgerRecord:
        row = await self._select(employee_id, for_update=True)
        if row is None:
            row = await self._create(employee_id)
        return _row_to_record(row)

    async def _create(self, employee_id: uuid.UUID) -> LeaveLedger:
        emp_check = await self.db.execute(
            select(Employee.id).where(Employee.id == employee_id)
        )
        if emp_check.scalar() is None:
            raise NotFoundException("Employee", str(employee_id))

        row = LeaveLedger(
            employee_id=employee_id,
            annual_days=0,
            used_annual_days=0.0,
            sick_days=settings.DEFAULT_SICK_DAYS,
            used_sick_days=0.0,
            substitute_leave_hours=0.0,
            compensatory_leave_hours=0.0,
            version=1,
        )
        self.db.add(row)
        await self.db.flush()
        logger.info("Created leave ledger for employee %s", employee_id)
        return row

    async def save(self, employee_id: uuid.UUID, record: LedgerRecord) -> LedgerRecord:
        result = await self.db.execute(
            update(LeaveLedger)
            .where(
                LeaveLedger.employee_id == employee_id,
                LeaveLedger.version == record.version,
            )
            .values(
                **record_to_values(record),
                version=record.version + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise StaleLedgerError(employee_id)
        return record.model_copy(update={"version": record.version + 1})


class InMemoryLedgerStore:
    """Dict-backed store for tests and tooling.

    ``io_delay`` yields to the event loop inside ``load`` to simulate a
    suspension point between read and write.
    """

    def __init__(self, io_delay: float = 0.0) -> None:
        self._records: dict[uuid.UUID, LedgerRecord] = {}
        self.io_delay = io_delay

    def add(self, record: LedgerRecord) -> None:
        self._records[record.employee_id] = record

    async def load(self, employee_id: uuid.UUID) -> LedgerRecord:
        record = self._records.get(employee_id)
        if record is None:
            raise NotFoundException("LeaveLedger", str(employee_id))
        if self.io_delay:
            await asyncio.sleep(self.io_delay)
        return record

    async def save(self, employee_id: uuid.UUID, record: LedgerRecord) -> LedgerRecord:
        current = self._records.get(employee_id)
        if current is None:
            raise NotFoundException("LeaveLedger", str(employee_id))
        if current.version != record.version:
            raise StaleLedgerError(employee_id)
        saved = record.model_copy(update={"version": record.version + 1})
        self._records[employee_id] = saved
        return saved


# ═════════════════════════════════════════════════════════════════════
# LedgerService
# ═════════════════════════════════════════════════════════════════════


def _require_ledger_category(category: LeaveCategory) -> None:
    if not category.is_ledger_backed:
        raise ValidationException(
            {"leave_type": [f"{category.value} leave is not tracked on the ledger."]}
        )


def is_step_multiple(amount: float, step: float) -> bool:
    """True when *amount* is a whole number of *step* units, up to float noise."""
    ratio = amount / step
    return abs(ratio - round(ratio)) < 1e-6


def validate_amount(category: LeaveCategory, amount: float) -> None:
    """Raise ``InvalidAmount`` unless *amount* is a usable request size for *category*."""
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidAmount(f"Amount must be a positive number, got {amount}.")
    if category.unit == LeaveUnit.hours:
        if amount > settings.MAX_HOURS_PER_REQUEST:
            raise InvalidAmount(
                f"A single request or grant may not exceed "
                f"{settings.MAX_HOURS_PER_REQUEST:g} hours, got {amount:g}."
            )
        if not is_step_multiple(amount, HOUR_AMOUNT_STEP):
            raise InvalidAmount(
                f"Hour amounts are counted in tenths of an hour, got {amount:g}."
            )
    elif not is_step_multiple(amount, DAY_AMOUNT_STEP):
        raise InvalidAmount(
            f"Day amounts must be whole or half days, got {amount:g}."
        )


class LedgerService:
    """Read, credit and debit one employee's ledger through a ``LedgerStore``."""

    _locks = KeyedLock()

    def __init__(self, store: LedgerStore, *, max_retries: Optional[int] = None) -> None:
        self.store = store
        self.max_retries = max_retries or settings.LEDGER_MAX_RETRIES

    # ── Reads ───────────────────────────────────────────────────────

    async def snapshot(self, employee_id: uuid.UUID) -> LedgerRecord:
        return await self.store.load(employee_id)

    async def get_balance(self, employee_id: uuid.UUID, category: LeaveCategory) -> float:
        _require_ledger_category(category)
        record = await self.store.load(employee_id)
        return record.available(category)

    async def availability(
        self,
        employee_id: uuid.UUID,
        category: LeaveCategory,
        amount: float,
    ) -> AvailabilityOut:
        """Explain whether *amount* of *category* could be consumed right now."""
        _require_ledger_category(category)
        record = await self.store.load(employee_id)
        available = record.available(category)
        unit = category.unit

        try:
            validate_amount(category, amount)
        except InvalidAmount as exc:
            return AvailabilityOut(
                can_apply=False, available=available, requested=amount,
                unit=unit, message=exc.detail,
            )

        if available + _EPSILON < amount:
            message = (
                f"You asked for {amount:g} {unit.value} of {category.value} leave "
                f"but only have {available:g} available."
            )
            return AvailabilityOut(
                can_apply=False, available=available, requested=amount,
                unit=unit, message=message,
            )

        return AvailabilityOut(
            can_apply=True, available=available, requested=amount, unit=unit,
            message=f"{available:g} {unit.value} of {category.value} leave available.",
        )

    async def can_consume(
        self,
        employee_id: uuid.UUID,
        category: LeaveCategory,
        amount: float,
    ) -> bool:
        result = await self.availability(employee_id, category, amount)
        return result.can_apply

    # ── Writes ──────────────────────────────────────────────────────

    async def _mutate(
        self,
        employee_id: uuid.UUID,
        change: Callable[[LedgerRecord], LedgerRecord],
    ) -> LedgerRecord:
        async with self._locks.hold(employee_id):
            for attempt in range(1, self.max_retries + 1):
                record = await self.store.load(employee_id)
                updated = change(record)
                try:
                    return await self.store.save(employee_id, updated)
                except StaleLedgerError:
                    logger.warning(
                        "Stale ledger write for employee %s (attempt %d/%d)",
                        employee_id, attempt, self.max_retries,
                    )
        raise LedgerConflict(employee_id)

    async def credit(
        self,
        employee_id: uuid.UUID,
        category: LeaveCategory,
        amount: float,
        source: str,
    ) -> LedgerRecord:
        """Raise an entitlement (day categories) or a running balance (hour categories)."""
        _require_ledger_category(category)
        if not math.isfinite(amount) or amount <= 0:
            raise InvalidAmount(f"Credit amount must be a positive number, got {amount}.")
        if category.unit == LeaveUnit.days and not float(amount).is_integer():
            raise InvalidAmount(f"Day entitlements are credited in whole days, got {amount:g}.")

        def change(record: LedgerRecord) -> LedgerRecord:
            current = record.balance(category)
            if isinstance(current, DayBalance):
                balance = DayBalance(
                    entitlement=current.entitlement + int(amount), used=current.used,
                )
            else:
                balance = HourBalance(hours=round_hours(current.hours + amount))
            return record.replace(category, balance)

        saved = await self._mutate(employee_id, change)
        logger.info(
            "Credited %g %s of %s leave to employee %s (source=%s)",
            amount, category.unit.value, category.value, employee_id, source,
        )
        return saved

    async def debit(
        self,
        employee_id: uuid.UUID,
        category: LeaveCategory,
        amount: float,
    ) -> LedgerRecord:
        """Consume *amount*; raises ``InsufficientBalance`` when it would over-draw."""
        _require_ledger_category(category)
        validate_amount(category, amount)

        def change(record: LedgerRecord) -> LedgerRecord:
            current = record.balance(category)
            available = current.available
            if available + _EPSILON < amount:
                raise InsufficientBalance(
                    category.value, amount, available, category.unit.value,
                )
            if isinstance(current, DayBalance):
                used = min(float(current.entitlement), current.used + amount)
                balance = DayBalance(entitlement=current.entitlement, used=used)
            else:
                balance = HourBalance(hours=max(0.0, round_hours(current.hours - amount)))
            return record.replace(category, balance)

        saved = await self._mutate(employee_id, change)
        logger.info(
            "Debited %g %s of %s leave from employee %s",
            amount, category.unit.value, category.value, employee_id,
        )
        return saved

    async def adjust(
        self,
        employee_id: uuid.UUID,
        category: LeaveCategory,
        delta: float,
        *,
        target: Optional[AdjustmentTarget] = None,
        source: str,
    ) -> LedgerRecord:
        """Apply a signed correction to one ledger field.

        Day categories change either the granted entitlement (whole days) or the
        used days (half-day steps); hour categories change the running balance.
        A correction that would leave a negative value, or used days above the
        entitlement, raises ``InvalidAmount`` and changes nothing.
        """
        _require_ledger_category(category)
        if not math.isfinite(delta) or delta == 0:
            raise InvalidAmount(
                f"Adjustment must be a non-zero number, got {delta}.", field="delta",
            )

        if category.unit == LeaveUnit.hours:
            if target is not None:
                raise ValidationException(
                    {"target": [f"{category.value} leave has a single hour balance; omit target."]}
                )
            if not is_step_multiple(delta, HOUR_AMOUNT_STEP):
                raise InvalidAmount(
                    f"Hour adjustments are counted in tenths of an hour, got {delta:g}.",
                    field="delta",
                )
        elif target is None:
            raise ValidationException(
                {"target": [f"{category.value} leave adjustments need a target: granted or used."]}
            )
        elif target == AdjustmentTarget.granted and not float(delta).is_integer():
            raise InvalidAmount(
                f"Day entitlements are adjusted in whole days, got {delta:g}.", field="delta",
            )
        elif target == AdjustmentTarget.used and not is_step_multiple(delta, DAY_AMOUNT_STEP):
            raise InvalidAmount(
                f"Used days are adjusted in whole or half days, got {delta:g}.", field="delta",
            )

        def change(record: LedgerRecord) -> LedgerRecord:
            current = record.balance(category)
            if isinstance(current, HourBalance):
                hours = round_hours(current.hours + delta)
                if hours < 0:
                    raise InvalidAmount(
                        f"Adjustment would leave {category.value} leave at {hours:g} hours; "
                        f"only {current.hours:g} available.",
                        field="delta",
                    )
                return record.replace(category, HourBalance(hours=hours))

            entitlement = current.entitlement
            used = current.used
            if target == AdjustmentTarget.granted:
                entitlement += int(delta)
            else:
                used = round(used + delta, 1)
            if entitlement < 0 or used < 0:
                raise InvalidAmount(
                    f"Adjustment would make {category.value} leave negative "
                    f"(entitlement {entitlement:g}, used {used:g}).",
                    field="delta",
                )
            if used > entitlement:
                raise InvalidAmount(
                    f"Adjustment would leave {used:g} used {category.value} days "
                    f"against an entitlement of {entitlement}.",
                    field="delta",
                )
            return record.replace(category, DayBalance(entitlement=entitlement, used=used))

        saved = await self._mutate(employee_id, change)
        logger.info(
            "Adjusted %s leave%s for employee %s by %+g %s (source=%s)",
            category.value, f" {target.value}" if target else "", employee_id,
            delta, category.unit.value, source,
        )
        return saved

    async def reset_period(
        self,
        employee_id: uuid.UUID,
        *,
        annual_days: int,
        sick_days: int,
    ) -> LedgerRecord:
        """Start a new accrual period: new day entitlements, nothing used yet."""

        def change(record: LedgerRecord) -> LedgerRecord:
            return record.model_copy(update={
                "annual": DayBalance(entitlement=annual_days),
                "sick": DayBalance(entitlement=sick_days),
            })

        saved = await self._mutate(employee_id, change)
        logger.info(
            "Reset leave period for employee %s: annual=%d sick=%d",
            employee_id, annual_days, sick_days,
        )
        return saved
