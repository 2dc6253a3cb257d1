#!/usr/bin/env python3
"""Annual leave accrual run — recompute entitlements for all active employees.

Meant to be triggered by cron at the start of each leave period. Every active,
non-terminated employee with a hire date gets a fresh annual entitlement,
used days reset to 0 and sick days reset to the yearly default.

Usage:
    python scripts/run_annual_accrual.py                    # as of today
    python scripts/run_annual_accrual.py --as-of 2026-01-01
    python scripts/run_annual_accrual.py --dry-run          # compute, then roll back

Exit codes:
    0 = run completed
    1 = run failed (nothing committed)
"""

import argparse
import asyncio
import logging
import sys
from datetime import date
from pathlib import Path

# ── Path setup ────────────────────────────────────────────────────────
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from dotenv import load_dotenv

load_dotenv(PROJECT_ROOT / ".env")

from leave_engine.database import async_session_factory
from leave_engine.leave.service import LeaveService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger("run_annual_accrual")


async def run(as_of: date, dry_run: bool) -> int:
    async with async_session_factory() as session:
        try:
            result = await LeaveService.run_annual_accrual(session, as_of)
        except Exception:
            await session.rollback()
            logger.exception("Accrual run failed; rolled back")
            return 1

        if dry_run:
            await session.rollback()
            logger.info("Dry run: rolled back %d ledger updates", result.updated)
        else:
            await session.commit()

    logger.info(
        "Accrual as of %s: processed=%d updated=%d skipped=%d",
        result.as_of, result.processed, result.updated, len(result.skipped),
    )
    for employee_id in result.skipped:
        logger.info("  skipped (no hire date): %s", employee_id)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the annual leave accrual.")
    parser.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=date.today(),
        help="Evaluation date (YYYY-MM-DD), default today",
    )
    parser.add_argument("--dry-run", action="store_true", help="Roll back instead of committing")
    args = parser.parse_args()

    return asyncio.run(run(args.as_of, args.dry_run))


if __name__ == "__main__":
    sys.exit(main())
