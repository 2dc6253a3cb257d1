"""One-time import of legacy ledger blobs.

Legacy records stored hour balances under two overlapping names
(``substitute_leave_hours`` / ``substitute_hours`` and
``compensatory_leave_hours`` / ``compensatory_hours``). Only the canonical
names survive reconciliation.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_engine.common.audit import create_audit_entry
from leave_engine.common.exceptions import NotFoundException
from leave_engine.config import settings
from leave_engine.core_hr.models import Employee
from leave_engine.leave.models import LeaveLedger
from leave_engine.leave.units import round_hours

logger = logging.getLogger(__name__)

# canonical key → legacy duplicate
LEGACY_HOUR_FIELDS: dict[str, str] = {
    "substitute_leave_hours": "substitute_hours",
    "compensatory_leave_hours": "compensatory_hours",
}


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def reconcile_hour_fields(blob: Mapping[str, Any]) -> dict[str, Any]:
    """Collapse duplicate hour fields onto the canonical key.

    The canonical value wins unless it is zero or missing, in which case the
    legacy value is used. Running it on its own output changes nothing.
    """
    result = {k: v for k, v in blob.items() if k not in LEGACY_HOUR_FIELDS.values()}
    for canonical, legacy in LEGACY_HOUR_FIELDS.items():
        value = _number(blob.get(canonical))
        if value == 0:
            value = _number(blob.get(legacy))
        result[canonical] = value
    return result


def ledger_values_from_legacy(blob: Mapping[str, Any]) -> dict[str, Any]:
    """Map a legacy blob onto ``leave_ledgers`` column values."""
    data = reconcile_hour_fields(blob)

    annual_days = max(0, int(_number(data.get("annual_days"))))
    sick_raw = data.get("sick_days")
    sick_days = settings.DEFAULT_SICK_DAYS if sick_raw is None else max(0, int(_number(sick_raw)))
    used_annual = max(0.0, _number(data.get("used_annual_days")))
    used_sick = max(0.0, _number(data.get("used_sick_days")))

    if used_annual > annual_days or used_sick > sick_days:
        logger.warning(
            "Legacy ledger over-drawn (annual %g/%d, sick %g/%d); clamping used to entitlement",
            used_annual, annual_days, used_sick, sick_days,
        )

    return {
        "annual_days": annual_days,
        "used_annual_days": min(used_annual, float(annual_days)),
        "sick_days": sick_days,
        "used_sick_days": min(used_sick, float(sick_days)),
        "substitute_leave_hours": max(0.0, round_hours(data["substitute_leave_hours"])),
        "compensatory_leave_hours": max(0.0, round_hours(data["compensatory_leave_hours"])),
    }


async def import_legacy_ledger(
    db: AsyncSession,
    employee_id: uuid.UUID,
    blob: Mapping[str, Any],
) -> bool:
    """Create the employee's ledger from *blob*. Returns False if one already exists."""
    emp_check = await db.execute(select(Employee.id).where(Employee.id == employee_id))
    if emp_check.scalar() is None:
        raise NotFoundException("Employee", str(employee_id))

    existing = await db.execute(
        select(LeaveLedger.employee_id).where(LeaveLedger.employee_id == employee_id)
    )
    if existing.scalar() is not None:
        logger.info("Ledger for employee %s already exists; skipping import", employee_id)
        return False

    values = ledger_values_from_legacy(blob)
    db.add(LeaveLedger(employee_id=employee_id, version=1, **values))
    await db.flush()

    await create_audit_entry(
        db,
        action="import",
        entity_type="leave_ledger",
        entity_id=employee_id,
        new_values=values,
    )
    logger.info("Imported legacy ledger for employee %s", employee_id)
    return True
