"""Monthly leave credit accrual and current-year backfill.

This is the only code that creates ``LeaveCredit`` rows. Each completed
month accrues once per employee at the role's monthly rate; months that
end before the hire date accrue nothing.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.common.constants import MANAGER_ROLES
from opsdesk.config import settings
from opsdesk.core_hr.models import Employee
from opsdesk.leave.models import LeaveCredit

logger = logging.getLogger(__name__)


def monthly_rate(employee: Employee) -> Decimal:
    """Credits earned per completed month for the employee's role."""
    if employee.role in MANAGER_ROLES:
        return settings.MANAGER_MONTHLY_RATE
    return settings.EMPLOYEE_MONTHLY_RATE


def month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


class AccrualService:

    @staticmethod
    async def accrue_monthly(
        db: AsyncSession,
        employee: Employee,
        year: int,
        month: int,
        *,
        today: date,
    ) -> tuple[Optional[LeaveCredit], bool]:
        """Accrue one month of credits. Returns ``(row, created)``.

        ``row`` is None when nothing may accrue (no hire date, month not yet
        over, or month ended before hire). An existing row is returned
        unchanged, so re-running a month is a no-op.
        """
        if employee.hired_date is None:
            return None, False

        last_day = month_end(year, month)
        if today < last_day or last_day < employee.hired_date:
            return None, False

        existing = (
            await db.execute(
                select(LeaveCredit).where(
                    LeaveCredit.employee_id == employee.id,
                    LeaveCredit.year == year,
                    LeaveCredit.month == month,
                )
            )
        ).scalars().first()
        if existing is not None:
            return existing, False

        rate = monthly_rate(employee)
        credit = LeaveCredit(
            employee_id=employee.id,
            year=year,
            month=month,
            credits_earned=rate,
            credits_used=Decimal("0"),
            credits_balance=rate,
            accrued_at=last_day,
        )
        db.add(credit)
        await db.flush()
        logger.info(
            "Accrued %s credit(s) for %s (%04d-%02d)",
            rate, employee.employee_code, year, month,
        )
        return credit, True

    @staticmethod
    async def backfill_credits(
        db: AsyncSession,
        employee: Employee,
        *,
        today: date,
    ) -> int:
        """Accrue every completed month of the current year. Returns rows created."""
        if employee.hired_date is None:
            return 0

        year = today.year
        first_month = 1
        if employee.hired_date.year == year:
            first_month = employee.hired_date.month
        elif employee.hired_date.year > year:
            return 0

        created = 0
        for month in range(first_month, 13):
            if month_end(year, month) > today:
                break
            _, was_created = await AccrualService.accrue_monthly(
                db, employee, year, month, today=today,
            )
            if was_created:
                created += 1
        return created

    @staticmethod
    async def backfill_all(db: AsyncSession, *, today: date) -> dict[str, int]:
        """Backfill every active employee. Returns ``{employee_code: rows_created}``."""
        employees = (
            await db.execute(
                select(Employee)
                .where(Employee.is_active.is_(True))
                .order_by(Employee.employee_code)
            )
        ).scalars().all()

        summary: dict[str, int] = {}
        for emp in employees:
            summary[emp.employee_code] = await AccrualService.backfill_credits(
                db, emp, today=today,
            )
        return summary
