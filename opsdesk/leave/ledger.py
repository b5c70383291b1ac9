"""Leave credit ledger — balance reads, whole-day deduction, tenure gate.

The ledger never creates rows (that is the accrual job's work) and never
adds credits back: cancelling or deleting a request that already
deducted leaves ``credits_used`` / ``credits_balance`` untouched.
"""

from __future__ import annotations

import calendar
import logging
import math
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.common.constants import CREDITED_LEAVE_TYPES, LeaveStatus
from opsdesk.common.exceptions import InsufficientCreditException, ValidationException
from opsdesk.config import settings
from opsdesk.core_hr.models import Employee
from opsdesk.leave.accrual import monthly_rate
from opsdesk.leave.models import LeaveCredit, LeaveRequest
from opsdesk.leave.schemas import CreditsSummaryOut, MonthlyCreditOut

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _dec(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


def credit_usage_deadline(credit_year: int) -> date:
    """Last day on which credits earned in *credit_year* may be used."""
    year = credit_year + 1
    month = settings.CREDIT_CARRYOVER_MONTH
    return date(year, month, calendar.monthrange(year, month)[1])


def add_months(day: date, months: int) -> date:
    """Shift *day* by *months*, clamping to the last day of the target month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


# ═════════════════════════════════════════════════════════════════════
# LeaveLedger
# ═════════════════════════════════════════════════════════════════════


class LeaveLedger:

    # ─────────────────────────────────────────────────────────────────
    # Eligibility
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def eligibility_date(employee: Employee) -> Optional[date]:
        if employee.hired_date is None:
            return None
        return add_months(employee.hired_date, settings.LEAVE_ELIGIBILITY_MONTHS)

    @staticmethod
    def is_eligible(employee: Employee, as_of: date) -> bool:
        """Tenure gate: eligible once the probation window has elapsed."""
        eligible_on = LeaveLedger.eligibility_date(employee)
        return eligible_on is not None and eligible_on <= as_of

    # ─────────────────────────────────────────────────────────────────
    # Balance
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _totals(
        db: AsyncSession, employee_id: uuid.UUID, year: int,
    ) -> tuple[Decimal, Decimal]:
        result = await db.execute(
            select(
                func.coalesce(func.sum(LeaveCredit.credits_earned), 0),
                func.coalesce(func.sum(LeaveCredit.credits_used), 0),
            ).where(
                LeaveCredit.employee_id == employee_id,
                LeaveCredit.year == year,
            )
        )
        earned, used = result.one()
        return _dec(earned), _dec(used)

    @staticmethod
    async def get_balance(
        db: AsyncSession, employee_id: uuid.UUID, as_of: date,
    ) -> Decimal:
        """Credits earned minus credits used for ``as_of.year``; never negative."""
        earned, used = await LeaveLedger._totals(db, employee_id, as_of.year)
        return max(Decimal("0.00"), earned - used)

    @staticmethod
    async def get_whole_balance(
        db: AsyncSession, employee_id: uuid.UUID, as_of: date,
    ) -> int:
        return math.floor(await LeaveLedger.get_balance(db, employee_id, as_of))

    # ─────────────────────────────────────────────────────────────────
    # Deduction
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _locked_rows(
        db: AsyncSession, employee_id: uuid.UUID, year: int,
    ) -> list[LeaveCredit]:
        result = await db.execute(
            select(LeaveCredit)
            .where(
                LeaveCredit.employee_id == employee_id,
                LeaveCredit.year == year,
            )
            .order_by(LeaveCredit.month)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    async def lock_balance(
        db: AsyncSession, employee_id: uuid.UUID, as_of: date,
    ) -> Decimal:
        """Lock the year's rows until the transaction ends and return their balance.

        Approval reads the balance through here so the credit split and the
        deduction that follows see the same rows.
        """
        rows = await LeaveLedger._locked_rows(db, employee_id, as_of.year)
        balance = sum((_dec(r.credits_balance) for r in rows), Decimal("0.00"))
        return max(Decimal("0.00"), balance)

    @staticmethod
    async def deduct(
        db: AsyncSession,
        employee_id: uuid.UUID,
        amount: Decimal,
        as_of: date,
        *,
        now: datetime,
    ) -> Decimal:
        """Consume *amount* credits from the year's rows, earliest month first.

        Rows are locked for the duration of the transaction so two
        approvals for the same employee cannot spend the same balance.
        *amount* may not exceed the whole days of the available balance,
        so a fractional remainder (balance 2.75 → at most 2) is never spent.
        """
        amount = _dec(amount)
        if amount < 0:
            raise ValidationException({"amount": ["Deduction cannot be negative."]})
        if amount == 0:
            return amount

        rows = await LeaveLedger._locked_rows(db, employee_id, as_of.year)

        balance = sum((_dec(r.credits_balance) for r in rows), Decimal("0.00"))
        whole = math.floor(balance)
        if amount > whole:
            logger.warning(
                "Rejected deduction of %s for employee %s: %s whole day(s) available",
                amount, employee_id, whole,
            )
            raise InsufficientCreditException(available=Decimal(whole), requested=amount)

        remaining = amount
        for row in rows:
            if remaining <= 0:
                break
            take = min(_dec(row.credits_balance), remaining)
            if take <= 0:
                continue
            row.credits_used = _dec(row.credits_used) + take
            row.credits_balance = _dec(row.credits_balance) - take
            row.updated_at = now
            remaining -= take

        await db.flush()
        logger.info(
            "Deducted %s credit(s) for employee %s (%s); balance was %s",
            amount, employee_id, as_of.year, balance,
        )
        return amount

    # ─────────────────────────────────────────────────────────────────
    # Summary
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_summary(
        db: AsyncSession, employee: Employee, as_of: date,
    ) -> CreditsSummaryOut:
        """Read-only credits-balance view for ``as_of.year``."""
        year = as_of.year
        earned, used = await LeaveLedger._totals(db, employee.id, year)
        balance = max(Decimal("0.00"), earned - used)

        rows = (
            await db.execute(
                select(LeaveCredit)
                .where(
                    LeaveCredit.employee_id == employee.id,
                    LeaveCredit.year == year,
                )
                .order_by(LeaveCredit.month)
            )
        ).scalars().all()

        pending = (
            await db.execute(
                select(func.coalesce(func.sum(LeaveRequest.days_requested), 0)).where(
                    LeaveRequest.employee_id == employee.id,
                    LeaveRequest.status == LeaveStatus.pending,
                    LeaveRequest.leave_type.in_(CREDITED_LEAVE_TYPES),
                    LeaveRequest.credits_year == year,
                )
            )
        ).scalar_one()

        return CreditsSummaryOut(
            employee_id=employee.id,
            year=year,
            balance=balance,
            total_earned=earned,
            total_used=used,
            whole_balance=math.floor(balance),
            pending_credits=_dec(pending),
            is_eligible=LeaveLedger.is_eligible(employee, as_of),
            eligibility_date=LeaveLedger.eligibility_date(employee),
            monthly_rate=monthly_rate(employee),
            credits_by_month=[MonthlyCreditOut.model_validate(r) for r in rows],
        )
