"""Leave credit ledger tests — balance reads, whole-day deduction, row locking
order, tenure eligibility, and the credits summary.

Tests run against SQLite via the shared conftest.py fixtures.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.common.constants import LeaveStatus, LeaveType, UserRole
from opsdesk.common.exceptions import InsufficientCreditException, ValidationException
from opsdesk.leave.ledger import LeaveLedger, add_months, credit_usage_deadline
from opsdesk.leave.models import LeaveCredit
from conftest import (
    _make_employee,
    _seed_credits,
    _seed_employee,
    _seed_request,
)

TODAY = date(2026, 3, 2)
NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


async def _rows(db: AsyncSession, employee_id) -> list[LeaveCredit]:
    result = await db.execute(
        select(LeaveCredit)
        .where(LeaveCredit.employee_id == employee_id)
        .order_by(LeaveCredit.year, LeaveCredit.month)
    )
    return list(result.scalars().all())


async def _spend_elsewhere(db: AsyncSession, employee_id, *, month: int, used: Decimal):
    """Consume credits behind the session's back, as a concurrent approval would."""
    row = (
        await db.execute(
            select(LeaveCredit).where(
                LeaveCredit.employee_id == employee_id, LeaveCredit.month == month,
            )
        )
    ).scalar_one()
    await db.execute(
        update(LeaveCredit)
        .where(LeaveCredit.id == row.id)
        .values(credits_used=used, credits_balance=row.credits_earned - used)
        .execution_options(synchronize_session=False)
    )


# ═════════════════════════════════════════════════════════════════════
# 1. Balance
# ═════════════════════════════════════════════════════════════════════


class TestBalance:

    async def test_sums_year_rows(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_credits(db, emp.id, {1: Decimal("1.25"), 2: Decimal("1.25")})
        await _seed_credits(db, emp.id, {12: Decimal("1.25")}, year=2025)

        assert await LeaveLedger.get_balance(db, emp.id, TODAY) == Decimal("2.50")
        assert await LeaveLedger.get_whole_balance(db, emp.id, TODAY) == 2

    async def test_no_rows_is_zero(self, db: AsyncSession):
        emp = await _seed_employee(db)
        assert await LeaveLedger.get_balance(db, emp.id, TODAY) == Decimal("0")
        assert await LeaveLedger.get_whole_balance(db, emp.id, TODAY) == 0


# ═════════════════════════════════════════════════════════════════════
# 2. Deduction
# ═════════════════════════════════════════════════════════════════════


class TestDeduct:

    async def test_fractional_remainder_preserved(self, db: AsyncSession):
        """Balance 2.75, deduct 2 → balance 0.75, used +2."""
        emp = await _seed_employee(db)
        await _seed_credits(db, emp.id, {1: Decimal("1.50"), 2: Decimal("1.25")})

        deducted = await LeaveLedger.deduct(db, emp.id, Decimal("2"), TODAY, now=NOW)

        assert deducted == Decimal("2")
        assert await LeaveLedger.get_balance(db, emp.id, TODAY) == Decimal("0.75")
        rows = await _rows(db, emp.id)
        assert sum(r.credits_used for r in rows) == Decimal("2")
        for r in rows:
            assert r.credits_balance == r.credits_earned - r.credits_used
            assert r.credits_balance >= 0

    async def test_consumes_earliest_month_first(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_credits(
            db, emp.id, {1: Decimal("1.50"), 2: Decimal("1.50"), 3: Decimal("1.50")},
        )

        await LeaveLedger.deduct(db, emp.id, Decimal("2"), TODAY, now=NOW)

        jan, feb, mar = await _rows(db, emp.id)
        assert jan.credits_balance == Decimal("0")
        assert feb.credits_balance == Decimal("1.00")
        assert mar.credits_balance == Decimal("1.50")

    @pytest.mark.parametrize(
        "balance, amount, ok",
        [
            ("2.75", "2", True),
            ("2.75", "3", False),
            ("3.00", "3", True),
            ("0.99", "1", False),
            ("5.25", "5", True),
        ],
    )
    async def test_succeeds_iff_within_whole_balance(
        self, db: AsyncSession, balance, amount, ok,
    ):
        emp = await _seed_employee(db)
        await _seed_credits(db, emp.id, {1: Decimal(balance)})

        if ok:
            await LeaveLedger.deduct(db, emp.id, Decimal(amount), TODAY, now=NOW)
            assert await LeaveLedger.get_balance(db, emp.id, TODAY) == (
                Decimal(balance) - Decimal(amount)
            )
        else:
            with pytest.raises(InsufficientCreditException) as exc_info:
                await LeaveLedger.deduct(db, emp.id, Decimal(amount), TODAY, now=NOW)
            assert exc_info.value.requested == Decimal(amount)
            assert await LeaveLedger.get_balance(db, emp.id, TODAY) == Decimal(balance)

    async def test_zero_is_noop(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_credits(db, emp.id, {1: Decimal("1.25")})
        assert await LeaveLedger.deduct(db, emp.id, Decimal("0"), TODAY, now=NOW) == 0
        assert await LeaveLedger.get_balance(db, emp.id, TODAY) == Decimal("1.25")

    async def test_negative_rejected(self, db: AsyncSession):
        emp = await _seed_employee(db)
        with pytest.raises(ValidationException):
            await LeaveLedger.deduct(db, emp.id, Decimal("-1"), TODAY, now=NOW)

    async def test_other_years_untouched(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_credits(db, emp.id, {12: Decimal("5")}, year=2025)
        await _seed_credits(db, emp.id, {1: Decimal("1.5")})

        with pytest.raises(InsufficientCreditException):
            await LeaveLedger.deduct(db, emp.id, Decimal("2"), TODAY, now=NOW)

    async def test_half_day_amount_within_whole_balance(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_credits(db, emp.id, {1: Decimal("3.25")})

        await LeaveLedger.deduct(db, emp.id, Decimal("2.5"), TODAY, now=NOW)

        assert await LeaveLedger.get_balance(db, emp.id, TODAY) == Decimal("0.75")

    async def test_stamps_supplied_time(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_credits(db, emp.id, {1: Decimal("1.50"), 2: Decimal("1.50")})

        await LeaveLedger.deduct(db, emp.id, Decimal("1"), TODAY, now=NOW)

        jan, feb = await _rows(db, emp.id)
        assert jan.updated_at == NOW
        assert feb.credits_used == Decimal("0")

    async def test_deducts_from_current_rows(self, db: AsyncSession):
        """Rows changed by another transaction are re-read, not served from the session."""
        emp = await _seed_employee(db)
        await _seed_credits(db, emp.id, {1: Decimal("3")})
        await _spend_elsewhere(db, emp.id, month=1, used=Decimal("2"))

        with pytest.raises(InsufficientCreditException) as exc_info:
            await LeaveLedger.deduct(db, emp.id, Decimal("2"), TODAY, now=NOW)
        assert exc_info.value.available == Decimal("1")


class TestLockBalance:

    async def test_matches_balance(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_credits(db, emp.id, {1: Decimal("1.50"), 2: Decimal("1.25")})
        await _seed_credits(db, emp.id, {12: Decimal("4")}, year=2025)

        assert await LeaveLedger.lock_balance(db, emp.id, TODAY) == Decimal("2.75")
        assert await LeaveLedger.lock_balance(db, emp.id, date(2025, 12, 31)) == Decimal("4.00")

    async def test_no_rows_is_zero(self, db: AsyncSession):
        emp = await _seed_employee(db)
        assert await LeaveLedger.lock_balance(db, emp.id, TODAY) == Decimal("0.00")

    async def test_reads_current_rows(self, db: AsyncSession):
        emp = await _seed_employee(db)
        await _seed_credits(db, emp.id, {1: Decimal("1.50"), 2: Decimal("1.25")})
        await _spend_elsewhere(db, emp.id, month=1, used=Decimal("1"))

        assert await LeaveLedger.lock_balance(db, emp.id, TODAY) == Decimal("1.75")


class TestUsageDeadline:

    def test_march_of_next_year(self):
        assert credit_usage_deadline(2026) == date(2027, 3, 31)
        assert credit_usage_deadline(2027) == date(2028, 3, 31)


# ═════════════════════════════════════════════════════════════════════
# 3. Eligibility
# ═════════════════════════════════════════════════════════════════════


class TestEligibility:

    def test_add_months_clamps_month_end(self):
        assert add_months(date(2025, 8, 31), 6) == date(2026, 2, 28)
        assert add_months(date(2025, 11, 15), 6) == date(2026, 5, 15)

    def test_six_months_after_hire(self):
        from opsdesk.core_hr.models import Employee

        emp = Employee(**_make_employee(hired_date=date(2025, 9, 2)))
        assert LeaveLedger.eligibility_date(emp) == date(2026, 3, 2)
        assert LeaveLedger.is_eligible(emp, date(2026, 3, 2))
        assert not LeaveLedger.is_eligible(emp, date(2026, 3, 1))

    def test_no_hire_date_never_eligible(self):
        from opsdesk.core_hr.models import Employee

        emp = Employee(**_make_employee(hired_date=None))
        assert LeaveLedger.eligibility_date(emp) is None
        assert not LeaveLedger.is_eligible(emp, TODAY)


# ═════════════════════════════════════════════════════════════════════
# 4. Summary
# ═════════════════════════════════════════════════════════════════════


class TestSummary:

    async def test_summary_fields(self, db: AsyncSession):
        emp = await _seed_employee(db, role=UserRole.team_lead)
        await _seed_credits(db, emp.id, {1: Decimal("1.5"), 2: Decimal("1.5")})
        await LeaveLedger.deduct(db, emp.id, Decimal("1"), TODAY, now=NOW)
        await _seed_request(db, emp.id, leave_type=LeaveType.SL, days_requested=Decimal("2"))
        await _seed_request(
            db, emp.id, leave_type=LeaveType.LOA, days_requested=Decimal("4"),
            start_date=date(2026, 4, 6), end_date=date(2026, 4, 9),
        )
        await _seed_request(
            db, emp.id, leave_type=LeaveType.VL, status=LeaveStatus.denied,
            start_date=date(2026, 5, 4), end_date=date(2026, 5, 4),
            days_requested=Decimal("1"),
        )

        summary = await LeaveLedger.get_summary(db, emp, TODAY)

        assert summary.year == 2026
        assert summary.total_earned == Decimal("3.00")
        assert summary.total_used == Decimal("1.00")
        assert summary.balance == Decimal("2.00")
        assert summary.whole_balance == 2
        assert summary.pending_credits == Decimal("2.00")
        assert summary.is_eligible is True
        assert summary.monthly_rate == Decimal("1.5")
        assert [m.month for m in summary.credits_by_month] == [1, 2]
