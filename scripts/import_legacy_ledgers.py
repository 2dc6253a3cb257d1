#!/usr/bin/env python3
"""One-time import of legacy leave ledgers from a JSON export.

The export is a list of objects, each with an ``employee_id`` (or
``employee_code``) and the legacy leave blob under ``leave_types``:

    [{"employee_code": "E001",
      "leave_types": {"annual_days": 15, "used_annual_days": 3,
                      "sick_days": 60, "used_sick_days": 0,
                      "substitute_hours": 6, "compensatory_leave_hours": 4.5}}]

Duplicate hour fields are reconciled onto the canonical names. Employees that
already have a ledger are skipped, so re-running the import is safe.

Usage:
    python scripts/import_legacy_ledgers.py export.json
    python scripts/import_legacy_ledgers.py export.json --dry-run
"""

import argparse
import asyncio
import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Any, Optional

# ── Path setup ────────────────────────────────────────────────────────
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from dotenv import load_dotenv

load_dotenv(PROJECT_ROOT / ".env")

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_engine.common.exceptions import NotFoundException
from leave_engine.core_hr.models import Employee
from leave_engine.database import async_session_factory
from leave_engine.leave.migration import import_legacy_ledger

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger("import_legacy_ledgers")


async def _resolve_employee(session: AsyncSession, entry: dict[str, Any]) -> Optional[uuid.UUID]:
    if entry.get("employee_id"):
        return uuid.UUID(str(entry["employee_id"]))
    code = entry.get("employee_code")
    if not code:
        return None
    result = await session.execute(select(Employee.id).where(Employee.employee_code == code))
    return result.scalar()


async def run(path: Path, dry_run: bool) -> int:
    entries = json.loads(path.read_text(encoding="utf-8"))
    imported = skipped = failed = 0

    async with async_session_factory() as session:
        for entry in entries:
            employee_id = await _resolve_employee(session, entry)
            if employee_id is None:
                logger.warning("No employee for entry %s", entry.get("employee_code"))
                failed += 1
                continue
            try:
                created = await import_legacy_ledger(
                    session, employee_id, entry.get("leave_types") or {},
                )
            except NotFoundException:
                logger.warning("Employee %s does not exist", employee_id)
                failed += 1
                continue
            if created:
                imported += 1
            else:
                skipped += 1

        if dry_run:
            await session.rollback()
        else:
            await session.commit()

    logger.info(
        "%s: imported=%d skipped=%d failed=%d",
        "Dry run" if dry_run else "Import", imported, skipped, failed,
    )
    return 1 if failed else 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Import legacy leave ledgers.")
    parser.add_argument("export", type=Path, help="JSON export file")
    parser.add_argument("--dry-run", action="store_true", help="Roll back instead of committing")
    args = parser.parse_args()

    return asyncio.run(run(args.export, args.dry_run))


if __name__ == "__main__":
    sys.exit(main())
