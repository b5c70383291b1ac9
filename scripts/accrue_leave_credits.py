#!/usr/bin/env python3
"""Leave credit accrual — monthly batch run for every active employee.

Purpose: create the LeaveCredit ledger rows the leave engine draws from.
By default backfills every completed month of the current year (already
accrued months are skipped), then rolls off expired attendance points.

Usage:
    python -m scripts.accrue_leave_credits                        # backfill current year
    python -m scripts.accrue_leave_credits --year 2026 --month 9  # one month only
    python -m scripts.accrue_leave_credits --today 2026-10-01     # pin the business date
    python -m scripts.accrue_leave_credits --skip-expirations
    python -m scripts.accrue_leave_credits --dry-run              # compute, then roll back

Requires in .env (project root):
    DATABASE_URL, JWT_SECRET
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date
from pathlib import Path

from dotenv import load_dotenv

# ── Path setup ────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

env_path = PROJECT_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("accrue_leave_credits")


# ══════════════════════════════════════════════════════════════════════
# Runner
# ══════════════════════════════════════════════════════════════════════


async def run(args: argparse.Namespace) -> int:
    from sqlalchemy import select

    from opsdesk.attendance.service import AttendanceService
    from opsdesk.core_hr.models import Employee
    from opsdesk.database import async_session_factory, engine
    from opsdesk.leave.accrual import AccrualService

    today = args.today or date.today()
    created_total = 0

    async with async_session_factory() as session:
        try:
            if args.month:
                year = args.year or today.year
                employees = (
                    await session.execute(
                        select(Employee)
                        .where(Employee.is_active.is_(True))
                        .order_by(Employee.employee_code)
                    )
                ).scalars().all()
                for emp in employees:
                    _, created = await AccrualService.accrue_monthly(
                        session, emp, year, args.month, today=today,
                    )
                    if created:
                        created_total += 1
                        logger.info("  %s: accrued %04d-%02d", emp.employee_code, year, args.month)
            else:
                summary = await AccrualService.backfill_all(session, today=today)
                for code, created in summary.items():
                    if created:
                        logger.info("  %s: %d month(s) accrued", code, created)
                created_total = sum(summary.values())
                logger.info("Processed %d active employee(s)", len(summary))

            if not args.skip_expirations:
                expired = await AttendanceService.process_expirations(session, today=today)
                rolled_off = await AttendanceService.process_good_behavior_roll_off(
                    session, today=today,
                )
                logger.info(
                    "Expired %d attendance point(s) by standard roll-off, %d by good behaviour",
                    expired, rolled_off,
                )

            if args.dry_run:
                await session.rollback()
                logger.info("Dry run — rolled back %d new ledger row(s)", created_total)
            else:
                await session.commit()
                logger.info("Created %d ledger row(s)", created_total)
        except Exception:
            await session.rollback()
            logger.exception("Accrual run failed; nothing was written")
            return 1
        finally:
            await engine.dispose()

    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Accrue monthly leave credits for all active employees",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--year", type=int, help="Accrual year (with --month)")
    parser.add_argument("--month", type=int, choices=range(1, 13), help="Single month to accrue")
    parser.add_argument(
        "--today", type=date.fromisoformat, help="Business date (YYYY-MM-DD); defaults to today",
    )
    parser.add_argument("--skip-expirations", action="store_true", help="Do not roll off attendance points")
    parser.add_argument("--dry-run", action="store_true", help="Roll back instead of committing")
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
