"""Credit split / conversion policy — pure approval transition.

Business logic:
  - Day counting over weekdays (weekends never consume credit), with an
    optional half day on the last day of a range
  - Dual-approval slot recording (Admin + HR, two distinct people)
  - Whole-day flooring of the ledger balance at final approval
  - Full credit, partial credit with a linked UPTO companion, or full
    conversion to UPTO

Nothing here touches the database. ``evaluate_approval`` takes immutable
snapshots and returns a new snapshot plus the ledger delta; the service
layer applies the result inside one transaction.
"""

from __future__ import annotations

import math
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from opsdesk.common.constants import (
    SPLIT_LEAVE_TYPES,
    ApproverSlot,
    LeaveDayType,
    LeaveStatus,
    LeaveType,
)
from opsdesk.common.exceptions import IllegalTransitionException, ValidationException

ZERO = Decimal("0")
HALF_DAY = Decimal("0.5")


# ═════════════════════════════════════════════════════════════════════
# Day counting
# ═════════════════════════════════════════════════════════════════════


def is_leave_day(day: date) -> bool:
    """Monday–Friday."""
    return day.weekday() < 5


def count_leave_days(start: date, end: date) -> int:
    """Number of weekdays in the inclusive range ``[start, end]``."""
    if end < start:
        return 0
    total = (end - start).days + 1
    full_weeks, remainder = divmod(total, 7)
    days = full_weeks * 5
    for offset in range(remainder):
        if is_leave_day(start + timedelta(days=full_weeks * 7 + offset)):
            days += 1
    return days


def leave_day_total(
    start: date,
    end: date,
    end_day_type: LeaveDayType = LeaveDayType.full_day,
) -> Decimal:
    """Leave days in ``[start, end]``, with a half day on *end* when it is one.

    Only the final day of a range may be a half day, so the first N days
    of any range are always whole days.
    """
    total = Decimal(count_leave_days(start, end))
    if end_day_type != LeaveDayType.full_day and total > 0 and is_leave_day(end):
        total -= HALF_DAY
    return total


def next_leave_day(after: date) -> date:
    """First weekday strictly after *after*."""
    day = after + timedelta(days=1)
    while not is_leave_day(day):
        day += timedelta(days=1)
    return day


def narrow_range(start: date, days: int) -> tuple[date, date]:
    """Return ``(first, last)`` spanning the first *days* weekdays from *start*.

    A weekend *start* is kept as the range start; counting begins at the
    first weekday on or after it.
    """
    if days < 1:
        raise ValueError("days must be at least 1")
    day = start
    counted = 0
    while True:
        if is_leave_day(day):
            counted += 1
            if counted == days:
                return start, day
        day += timedelta(days=1)


def _fmt(value: Decimal | int) -> str:
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)


# ═════════════════════════════════════════════════════════════════════
# Snapshots
# ═════════════════════════════════════════════════════════════════════


class RequestSnapshot(BaseModel):
    """Immutable view of a leave request, as read at approval time."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveType
    start_date: date
    end_date: date
    days_requested: Decimal
    end_day_type: LeaveDayType = LeaveDayType.full_day
    status: LeaveStatus
    credits_deducted: Decimal = ZERO
    admin_approved_by: Optional[uuid.UUID] = None
    admin_approved_at: Optional[datetime] = None
    hr_approved_by: Optional[uuid.UUID] = None
    hr_approved_at: Optional[datetime] = None
    reviewed_by: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    vl_credits_applied: bool = False
    vl_no_credit_reason: Optional[str] = None
    has_partial_credit: bool = False

    @property
    def slots_filled(self) -> bool:
        return self.admin_approved_by is not None and self.hr_approved_by is not None


class LedgerSnapshot(BaseModel):
    """Available balance for the request's credit year."""

    model_config = ConfigDict(frozen=True)

    balance: Decimal = ZERO

    @property
    def whole(self) -> int:
        return max(0, math.floor(self.balance))


class ApprovalEvent(BaseModel):
    """One approver acting in one slot."""

    model_config = ConfigDict(frozen=True)

    approver_id: uuid.UUID
    slot: ApproverSlot
    at: datetime
    review_notes: Optional[str] = None


class CompanionDraft(BaseModel):
    """UPTO request covering the uncredited tail of a split request."""

    model_config = ConfigDict(frozen=True)

    employee_id: uuid.UUID
    linked_request_id: uuid.UUID
    leave_type: LeaveType = LeaveType.UPTO
    start_date: date
    end_date: date
    days_requested: Decimal
    end_day_type: LeaveDayType = LeaveDayType.full_day
    status: LeaveStatus = LeaveStatus.approved
    credits_deducted: Decimal = ZERO
    admin_approved_by: Optional[uuid.UUID] = None
    admin_approved_at: Optional[datetime] = None
    hr_approved_by: Optional[uuid.UUID] = None
    hr_approved_at: Optional[datetime] = None
    reviewed_by: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None


class ApprovalOutcome(BaseModel):
    """Result of one approval event: new request state, ledger delta, companion."""

    model_config = ConfigDict(frozen=True)

    request: RequestSnapshot
    ledger_delta: Decimal = ZERO
    companion: Optional[CompanionDraft] = None

    @property
    def completed(self) -> bool:
        return self.request.status == LeaveStatus.approved


# ═════════════════════════════════════════════════════════════════════
# Transition
# ═════════════════════════════════════════════════════════════════════


def record_slot(request: RequestSnapshot, event: ApprovalEvent) -> RequestSnapshot:
    """Record *event* in its approval slot, without completing the request."""
    if request.status != LeaveStatus.pending:
        raise IllegalTransitionException(
            "LeaveRequest", request.status.value, "approve"
        )

    if event.slot == ApproverSlot.admin:
        own_by, other_by = request.admin_approved_by, request.hr_approved_by
    else:
        own_by, other_by = request.hr_approved_by, request.admin_approved_by

    if own_by is not None:
        raise ValidationException(
            {"approval": [f"{event.slot.value.upper()} approval is already recorded."]}
        )
    if other_by == event.approver_id:
        raise ValidationException(
            {"approval": ["Admin and HR approvals must come from two different people."]}
        )

    if event.slot == ApproverSlot.admin:
        update = {"admin_approved_by": event.approver_id, "admin_approved_at": event.at}
    else:
        update = {"hr_approved_by": event.approver_id, "hr_approved_at": event.at}
    return request.model_copy(update=update)


def apply_credit_split(
    request: RequestSnapshot,
    ledger: LedgerSnapshot,
    *,
    eligible: bool,
) -> ApprovalOutcome:
    """Decide credited vs. uncredited days for an approved VL/SL request."""
    if request.leave_type not in SPLIT_LEAVE_TYPES:
        return ApprovalOutcome(request=request)

    code = request.leave_type.value
    requested = request.days_requested

    if not eligible:
        return ApprovalOutcome(
            request=_convert(
                request, f"Not eligible for {code} credits yet (tenure requirement not met)"
            )
        )

    whole = ledger.whole
    if whole == 0:
        return ApprovalOutcome(
            request=_convert(request, f"No {code} credits available")
        )

    if whole >= requested:
        credited = request.model_copy(update={
            "credits_deducted": requested,
            "vl_credits_applied": True,
            "vl_no_credit_reason": None,
        })
        return ApprovalOutcome(request=credited, ledger_delta=requested)

    # Partial credit: parent keeps the first `whole` days, companion the rest.
    excess = requested - whole
    parent_start, parent_end = narrow_range(request.start_date, whole)
    companion_start = next_leave_day(parent_end)
    reason = (
        f"Partial {code} credits: {whole} of {_fmt(requested)} day(s) credited; "
        f"{_fmt(excess)} day(s) converted to UPTO"
    )
    parent = request.model_copy(update={
        "start_date": parent_start,
        "end_date": parent_end,
        "days_requested": Decimal(whole),
        "end_day_type": LeaveDayType.full_day,
        "credits_deducted": Decimal(whole),
        "vl_credits_applied": True,
        "vl_no_credit_reason": reason,
        "has_partial_credit": True,
    })
    companion = CompanionDraft(
        employee_id=request.employee_id,
        linked_request_id=request.id,
        start_date=companion_start,
        end_date=max(request.end_date, companion_start),
        days_requested=excess,
        end_day_type=request.end_day_type,
        admin_approved_by=request.admin_approved_by,
        admin_approved_at=request.admin_approved_at,
        hr_approved_by=request.hr_approved_by,
        hr_approved_at=request.hr_approved_at,
        reviewed_by=request.reviewed_by,
        reviewed_at=request.reviewed_at,
    )
    return ApprovalOutcome(
        request=parent, ledger_delta=Decimal(whole), companion=companion,
    )


def _convert(request: RequestSnapshot, reason: str) -> RequestSnapshot:
    return request.model_copy(update={
        "leave_type": LeaveType.UPTO,
        "credits_deducted": ZERO,
        "vl_credits_applied": False,
        "vl_no_credit_reason": reason,
    })


def evaluate_approval(
    request: RequestSnapshot,
    ledger: LedgerSnapshot,
    event: ApprovalEvent,
    *,
    eligible: bool,
) -> ApprovalOutcome:
    """Apply one approver's action.

    The first slot leaves the request pending. The second, distinct slot
    moves it to approved and runs the credit split exactly once.
    """
    recorded = record_slot(request, event)
    if not recorded.slots_filled:
        return ApprovalOutcome(request=recorded)

    approved = recorded.model_copy(update={
        "status": LeaveStatus.approved,
        "reviewed_by": event.approver_id,
        "reviewed_at": event.at,
        "review_notes": event.review_notes or request.review_notes,
    })
    return apply_credit_split(approved, ledger, eligible=eligible)
