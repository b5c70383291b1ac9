"""Credit split policy tests — day counting, dual-approval slots, and the
whole-day flooring / partial split / conversion outcomes.

Pure functions only; no database.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from opsdesk.common.constants import ApproverSlot, LeaveDayType, LeaveStatus, LeaveType
from opsdesk.common.exceptions import IllegalTransitionException, ValidationException
from opsdesk.leave.policy import (
    ApprovalEvent,
    LedgerSnapshot,
    RequestSnapshot,
    apply_credit_split,
    count_leave_days,
    evaluate_approval,
    leave_day_total,
    narrow_range,
    next_leave_day,
)

ADMIN_ID = uuid.uuid4()
HR_ID = uuid.uuid4()
AT = datetime(2026, 3, 3, 9, 30, tzinfo=timezone.utc)


def _request(
    *,
    leave_type: LeaveType = LeaveType.VL,
    start: date = date(2026, 3, 16),   # Monday
    end: date = date(2026, 3, 20),     # Friday
    days: Decimal = Decimal("5"),
    status: LeaveStatus = LeaveStatus.pending,
    **extra,
) -> RequestSnapshot:
    return RequestSnapshot(
        id=uuid.uuid4(),
        employee_id=uuid.uuid4(),
        leave_type=leave_type,
        start_date=start,
        end_date=end,
        days_requested=days,
        status=status,
        **extra,
    )


def _approved(**kwargs) -> RequestSnapshot:
    return _request(
        status=LeaveStatus.approved,
        admin_approved_by=ADMIN_ID,
        admin_approved_at=AT,
        hr_approved_by=HR_ID,
        hr_approved_at=AT,
        reviewed_by=HR_ID,
        reviewed_at=AT,
        **kwargs,
    )


def _event(slot: ApproverSlot, approver_id: uuid.UUID) -> ApprovalEvent:
    return ApprovalEvent(approver_id=approver_id, slot=slot, at=AT)


# ═════════════════════════════════════════════════════════════════════
# 1. Day counting
# ═════════════════════════════════════════════════════════════════════


class TestDayCounting:

    def test_weekend_start_excluded(self):
        """Sat 2025-11-01 → Wed 2025-11-05 counts Mon, Tue, Wed."""
        assert count_leave_days(date(2025, 11, 1), date(2025, 11, 5)) == 3

    def test_full_weeks(self):
        # Mon 2026-03-02 → Sun 2026-03-15: two full weeks
        assert count_leave_days(date(2026, 3, 2), date(2026, 3, 15)) == 10

    def test_single_weekday(self):
        assert count_leave_days(date(2026, 3, 4), date(2026, 3, 4)) == 1

    def test_weekend_only(self):
        assert count_leave_days(date(2026, 3, 7), date(2026, 3, 8)) == 0

    def test_reversed_range_is_empty(self):
        assert count_leave_days(date(2026, 3, 10), date(2026, 3, 9)) == 0

    @pytest.mark.parametrize("end_day_type", [LeaveDayType.first_half, LeaveDayType.second_half])
    def test_half_day_end(self, end_day_type):
        assert leave_day_total(date(2026, 3, 2), date(2026, 3, 4), end_day_type) == Decimal("2.5")
        assert leave_day_total(date(2026, 3, 4), date(2026, 3, 4), end_day_type) == Decimal("0.5")

    def test_half_day_on_weekend_end_is_ignored(self):
        assert leave_day_total(
            date(2026, 3, 2), date(2026, 3, 7), LeaveDayType.first_half,
        ) == Decimal("5")

    def test_full_day_total_matches_count(self):
        assert leave_day_total(date(2025, 11, 1), date(2025, 11, 5)) == Decimal("3")

    def test_next_leave_day_skips_weekend(self):
        assert next_leave_day(date(2026, 3, 20)) == date(2026, 3, 23)
        assert next_leave_day(date(2026, 3, 16)) == date(2026, 3, 17)

    def test_narrow_range_counts_weekdays(self):
        # Thu 2026-03-19 + 3 weekdays → Thu, Fri, Mon
        assert narrow_range(date(2026, 3, 19), 3) == (date(2026, 3, 19), date(2026, 3, 23))

    def test_narrow_range_keeps_weekend_start(self):
        assert narrow_range(date(2026, 3, 14), 1) == (date(2026, 3, 14), date(2026, 3, 16))

    def test_narrow_range_rejects_zero(self):
        with pytest.raises(ValueError):
            narrow_range(date(2026, 3, 16), 0)


# ═════════════════════════════════════════════════════════════════════
# 2. Dual approval slots
# ═════════════════════════════════════════════════════════════════════


class TestDualApproval:

    def test_first_slot_stays_pending(self):
        outcome = evaluate_approval(
            _request(), LedgerSnapshot(balance=Decimal("10")),
            _event(ApproverSlot.admin, ADMIN_ID), eligible=True,
        )
        assert not outcome.completed
        assert outcome.request.status == LeaveStatus.pending
        assert outcome.request.admin_approved_by == ADMIN_ID
        assert outcome.request.hr_approved_by is None
        assert outcome.ledger_delta == 0
        assert outcome.companion is None

    def test_second_distinct_slot_completes(self):
        first = evaluate_approval(
            _request(), LedgerSnapshot(balance=Decimal("10")),
            _event(ApproverSlot.hr, HR_ID), eligible=True,
        )
        second = evaluate_approval(
            first.request, LedgerSnapshot(balance=Decimal("10")),
            _event(ApproverSlot.admin, ADMIN_ID), eligible=True,
        )
        assert second.completed
        assert second.request.reviewed_by == ADMIN_ID
        assert second.request.reviewed_at == AT
        assert second.ledger_delta == Decimal("5")

    def test_same_slot_twice_rejected(self):
        first = evaluate_approval(
            _request(), LedgerSnapshot(), _event(ApproverSlot.admin, ADMIN_ID), eligible=True,
        )
        with pytest.raises(ValidationException) as exc_info:
            evaluate_approval(
                first.request, LedgerSnapshot(),
                _event(ApproverSlot.admin, uuid.uuid4()), eligible=True,
            )
        assert "approval" in exc_info.value.errors

    def test_same_person_cannot_fill_both_slots(self):
        first = evaluate_approval(
            _request(), LedgerSnapshot(), _event(ApproverSlot.admin, ADMIN_ID), eligible=True,
        )
        with pytest.raises(ValidationException):
            evaluate_approval(
                first.request, LedgerSnapshot(),
                _event(ApproverSlot.hr, ADMIN_ID), eligible=True,
            )

    @pytest.mark.parametrize(
        "status", [LeaveStatus.approved, LeaveStatus.denied, LeaveStatus.cancelled],
    )
    def test_non_pending_is_illegal(self, status):
        with pytest.raises(IllegalTransitionException):
            evaluate_approval(
                _request(status=status), LedgerSnapshot(balance=Decimal("10")),
                _event(ApproverSlot.admin, ADMIN_ID), eligible=True,
            )

    def test_input_snapshot_not_mutated(self):
        original = _request()
        evaluate_approval(
            original, LedgerSnapshot(), _event(ApproverSlot.admin, ADMIN_ID), eligible=True,
        )
        assert original.admin_approved_by is None
        assert original.status == LeaveStatus.pending


# ═════════════════════════════════════════════════════════════════════
# 3. Credit split outcomes
# ═════════════════════════════════════════════════════════════════════


class TestCreditSplit:

    def test_full_credit_keeps_type_and_dates(self):
        req = _approved()
        outcome = apply_credit_split(req, LedgerSnapshot(balance=Decimal("7.5")), eligible=True)

        assert outcome.request.leave_type == LeaveType.VL
        assert outcome.request.start_date == req.start_date
        assert outcome.request.end_date == req.end_date
        assert outcome.request.credits_deducted == Decimal("5")
        assert outcome.request.vl_credits_applied is True
        assert outcome.request.has_partial_credit is False
        assert outcome.ledger_delta == Decimal("5")
        assert outcome.companion is None

    def test_exact_balance_is_full_credit(self):
        outcome = apply_credit_split(_approved(), LedgerSnapshot(balance=Decimal("5.00")), eligible=True)
        assert outcome.companion is None
        assert outcome.ledger_delta == Decimal("5")

    def test_partial_credit_splits_range(self):
        """floor(2.75) = 2 of 5 days → parent Mon–Tue, companion Wed–Fri."""
        req = _approved()
        outcome = apply_credit_split(req, LedgerSnapshot(balance=Decimal("2.75")), eligible=True)

        parent, companion = outcome.request, outcome.companion
        assert parent.leave_type == LeaveType.VL
        assert parent.start_date == date(2026, 3, 16)
        assert parent.end_date == date(2026, 3, 17)
        assert parent.days_requested == Decimal("2")
        assert parent.credits_deducted == Decimal("2")
        assert parent.has_partial_credit is True
        assert parent.vl_no_credit_reason.startswith("Partial VL credits")
        assert "2 of 5" in parent.vl_no_credit_reason
        assert outcome.ledger_delta == Decimal("2")

        assert companion.leave_type == LeaveType.UPTO
        assert companion.status == LeaveStatus.approved
        assert companion.linked_request_id == req.id
        assert companion.employee_id == req.employee_id
        assert companion.start_date == date(2026, 3, 18)
        assert companion.end_date == date(2026, 3, 20)
        assert companion.days_requested == Decimal("3")
        assert companion.credits_deducted == 0
        assert count_leave_days(companion.start_date, companion.end_date) == 3

    def test_partial_split_across_weekend(self):
        # Thu 19 → Wed 25: Thu, Fri | Mon, Tue, Wed
        req = _approved(start=date(2026, 3, 19), end=date(2026, 3, 25))
        outcome = apply_credit_split(req, LedgerSnapshot(balance=Decimal("2")), eligible=True)
        assert outcome.request.end_date == date(2026, 3, 20)
        assert outcome.companion.start_date == date(2026, 3, 23)
        assert outcome.companion.end_date == date(2026, 3, 25)

    def test_companion_copies_approvers(self):
        outcome = apply_credit_split(_approved(), LedgerSnapshot(balance=Decimal("1")), eligible=True)
        companion = outcome.companion
        assert companion.admin_approved_by == ADMIN_ID
        assert companion.hr_approved_by == HR_ID
        assert companion.admin_approved_at == AT
        assert companion.hr_approved_at == AT
        assert companion.reviewed_by == HR_ID

    def test_sl_partial_reason(self):
        outcome = apply_credit_split(
            _approved(leave_type=LeaveType.SL), LedgerSnapshot(balance=Decimal("3")), eligible=True,
        )
        assert outcome.request.vl_no_credit_reason.startswith("Partial SL credits")
        assert outcome.companion.days_requested == Decimal("2")

    @pytest.mark.parametrize("balance", ["0", "0.75", "0.99"])
    def test_zero_whole_credit_converts(self, balance):
        outcome = apply_credit_split(_approved(), LedgerSnapshot(balance=Decimal(balance)), eligible=True)
        assert outcome.request.leave_type == LeaveType.UPTO
        assert outcome.request.credits_deducted == 0
        assert outcome.request.vl_credits_applied is False
        assert outcome.request.vl_no_credit_reason == "No VL credits available"
        assert outcome.request.start_date == date(2026, 3, 16)
        assert outcome.request.end_date == date(2026, 3, 20)
        assert outcome.ledger_delta == 0
        assert outcome.companion is None

    def test_ineligible_converts_regardless_of_balance(self):
        outcome = apply_credit_split(_approved(), LedgerSnapshot(balance=Decimal("20")), eligible=False)
        assert outcome.request.leave_type == LeaveType.UPTO
        assert outcome.request.vl_no_credit_reason.startswith("Not eligible")
        assert outcome.ledger_delta == 0
        assert outcome.companion is None

    @pytest.mark.parametrize(
        "leave_type", [LeaveType.BL, LeaveType.SPL, LeaveType.LOA, LeaveType.LDV, LeaveType.UPTO],
    )
    def test_other_types_untouched(self, leave_type):
        req = _approved(leave_type=leave_type)
        outcome = apply_credit_split(req, LedgerSnapshot(balance=Decimal("0")), eligible=False)
        assert outcome.request == req
        assert outcome.ledger_delta == 0
        assert outcome.companion is None
