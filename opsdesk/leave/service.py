"""Leave service layer — submission, dual approval, denial, cancellation, deletion.

Business logic:
  - Submission gates: past dates, empty ranges, duplicates; for VL/BL the
    attendance points, advance notice, credit usage window and recent
    absence rules; VL whole-day credit sufficiency, which takes precedence
    and carries the other gate messages with it
  - Dual approval (Admin slot + HR slot, two distinct people); the second
    approval is a compare-and-set on status, so the credit split runs once,
    against a balance read under the ledger row lock
  - Credit split / conversion applied from the pure policy outcome
  - Cancellation and deletion decided by the capability table; credits
    already deducted are never restored
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.attendance.service import AttendanceService
from opsdesk.common.audit import create_audit_entry
from opsdesk.common.constants import (
    ADMIN_ROLES,
    APPROVER_SLOTS,
    DATE_FORMAT,
    REVIEWER_ROLES,
    VACATION_LIKE_TYPES,
    ApproverSlot,
    LeaveStatus,
    LeaveType,
)
from opsdesk.common.exceptions import (
    DuplicateRequestException,
    ForbiddenException,
    IllegalTransitionException,
    InsufficientCreditException,
    NotFoundException,
    ValidationException,
)
from opsdesk.common.pagination import paginate
from opsdesk.config import settings
from opsdesk.core_hr.models import Employee
from opsdesk.leave.ledger import LeaveLedger, credit_usage_deadline
from opsdesk.leave.models import LeaveRequest
from opsdesk.leave.permissions import LeaveAction, can_perform
from opsdesk.leave.policy import (
    ApprovalEvent,
    LedgerSnapshot,
    RequestSnapshot,
    evaluate_approval,
    leave_day_total,
)
from opsdesk.leave.schemas import (
    CreditsSummaryOut,
    LeaveRequestCreate,
    LeaveRequestOut,
)

logger = logging.getLogger(__name__)

# Columns written back from a policy outcome
_OUTCOME_FIELDS = {
    "leave_type",
    "start_date",
    "end_date",
    "days_requested",
    "end_day_type",
    "status",
    "credits_deducted",
    "admin_approved_by",
    "admin_approved_at",
    "hr_approved_by",
    "hr_approved_at",
    "reviewed_by",
    "reviewed_at",
    "review_notes",
    "vl_credits_applied",
    "vl_no_credit_reason",
    "has_partial_credit",
}

_SLOT_COLUMNS = {
    ApproverSlot.admin: (LeaveRequest.admin_approved_by, LeaveRequest.hr_approved_by),
    ApproverSlot.hr: (LeaveRequest.hr_approved_by, LeaveRequest.admin_approved_by),
}


def _ledger_date(req: LeaveRequest, today: date) -> date:
    """Date whose year selects the ledger the request draws from."""
    if req.credits_year is None or req.credits_year == today.year:
        return today
    return date(req.credits_year, 12, 31)


def _audit_values(req: LeaveRequest) -> dict[str, Any]:
    return {
        "leave_type": req.leave_type.value,
        "status": req.status.value,
        "start_date": req.start_date.isoformat(),
        "end_date": req.end_date.isoformat(),
        "days_requested": str(req.days_requested),
        "credits_deducted": str(req.credits_deducted),
    }


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:

    # ─────────────────────────────────────────────────────────────────
    # Internal helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_request(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
        result = await db.execute(
            select(LeaveRequest).where(LeaveRequest.id == request_id)
        )
        leave_req = result.scalars().first()
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave_req

    @staticmethod
    async def _get_companion(
        db: AsyncSession, parent_id: uuid.UUID,
    ) -> Optional[LeaveRequest]:
        result = await db.execute(
            select(LeaveRequest).where(LeaveRequest.linked_request_id == parent_id)
        )
        return result.scalars().first()

    @staticmethod
    async def _get_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        result = await db.execute(
            select(Employee).where(
                Employee.id == employee_id, Employee.is_active.is_(True),
            )
        )
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    @staticmethod
    def _build_request_response(
        req: LeaveRequest,
        *,
        companion_id: Optional[uuid.UUID] = None,
    ) -> LeaveRequestOut:
        out = LeaveRequestOut.model_validate(req)
        out.companion_id = companion_id
        return out

    # ─────────────────────────────────────────────────────────────────
    # Submit Leave
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit_leave(
        db: AsyncSession,
        actor: Employee,
        data: LeaveRequestCreate,
        *,
        today: date,
    ) -> LeaveRequestOut:
        """Create a pending leave request after running every submission gate."""

        is_admin = actor.role in ADMIN_ROLES

        # ── Resolve the employee the request is for ─────────────────
        target = actor
        if data.employee_id is not None and data.employee_id != actor.id:
            if not is_admin:
                raise ForbiddenException(
                    "Only an Admin can file leave on behalf of another employee."
                )
            target = await LeaveService._get_employee(db, data.employee_id)

        if data.short_notice_override and not is_admin:
            raise ForbiddenException("Only an Admin can override the notice period.")

        # ── Dates and day count ─────────────────────────────────────
        if data.start_date < today:
            raise ValidationException(
                {"start_date": ["Start date cannot be in the past."]}
            )

        days_requested = leave_day_total(
            data.start_date, data.end_date, data.end_day_type,
        )
        if days_requested == 0:
            raise ValidationException(
                {"end_date": ["The selected dates contain no working days."]}
            )

        # ── Duplicate pending request ───────────────────────────────
        dup = await db.execute(
            select(LeaveRequest.id).where(
                LeaveRequest.employee_id == target.id,
                LeaveRequest.leave_type == data.leave_type,
                LeaveRequest.start_date == data.start_date,
                LeaveRequest.end_date == data.end_date,
                LeaveRequest.status == LeaveStatus.pending,
            )
        )
        if dup.scalars().first() is not None:
            raise DuplicateRequestException(
                f"A pending {data.leave_type.value} request for "
                f"{data.start_date.strftime(DATE_FORMAT)} – "
                f"{data.end_date.strftime(DATE_FORMAT)} already exists."
            )

        # ── VL / BL gates: points, notice, usage window, recent absence ─
        points = await AttendanceService.get_active_points(db, target.id)
        errors: dict[str, list[str]] = {}
        if data.leave_type in VACATION_LIKE_TYPES:
            if points > settings.VL_MAX_ATTENDANCE_POINTS:
                errors.setdefault("attendance_points", []).append(
                    f"You have {points} attendance points; "
                    f"{settings.VL_MAX_ATTENDANCE_POINTS} or fewer are required."
                )

            earliest = today + timedelta(days=settings.VL_NOTICE_DAYS)
            if not data.short_notice_override and data.start_date < earliest:
                errors.setdefault("start_date", []).append(
                    f"Leave must be filed at least {settings.VL_NOTICE_DAYS} days "
                    f"in advance. Earliest date is {earliest.strftime(DATE_FORMAT)}."
                )

            usable_until = credit_usage_deadline(today.year)
            if data.end_date > usable_until:
                errors.setdefault("end_date", []).append(
                    f"Credits from {today.year} can only be used until "
                    f"{usable_until.strftime(DATE_FORMAT)}."
                )

            last_absence = await AttendanceService.get_last_absence(
                db, target.id, on_or_before=data.start_date,
            )
            cooldown = timedelta(days=settings.VL_ABSENCE_COOLDOWN_DAYS)
            if last_absence is not None and data.start_date < last_absence + cooldown:
                errors.setdefault("start_date", []).append(
                    f"An absence on {last_absence.strftime(DATE_FORMAT)} falls within "
                    f"{settings.VL_ABSENCE_COOLDOWN_DAYS} days of the start date. "
                    f"Earliest date is {(last_absence + cooldown).strftime(DATE_FORMAT)}."
                )

        # ── Credit sufficiency (VL only) ────────────────────────────
        if data.leave_type == LeaveType.VL:
            whole = await LeaveLedger.get_whole_balance(db, target.id, today)
            if whole < days_requested:
                logger.warning(
                    "Rejected VL submission for %s: %s whole credit(s), %s day(s) requested",
                    target.employee_code, whole, days_requested,
                )
                raise InsufficientCreditException(
                    available=Decimal(whole),
                    requested=days_requested,
                    errors=errors or None,
                )

        if errors:
            raise ValidationException(errors)

        # ── Create leave request ────────────────────────────────────
        leave_req = LeaveRequest(
            employee_id=target.id,
            leave_type=data.leave_type,
            start_date=data.start_date,
            end_date=data.end_date,
            days_requested=days_requested,
            end_day_type=data.end_day_type,
            reason=data.reason,
            campaign_department=data.campaign_department,
            status=LeaveStatus.pending,
            credits_deducted=Decimal("0"),
            credits_year=today.year,
            attendance_points_at_request=points,
            short_notice_override=data.short_notice_override,
        )
        db.add(leave_req)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=actor.id,
            new_values=_audit_values(leave_req),
        )
        logger.info(
            "Submitted %s request %s for %s (%s day(s))",
            data.leave_type.value, leave_req.id, target.employee_code, days_requested,
        )
        return LeaveService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Approve Leave
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver: Employee,
        *,
        review_notes: Optional[str] = None,
        now: datetime,
    ) -> LeaveRequestOut:
        """Record one approval slot; the second distinct slot completes approval."""

        slot = APPROVER_SLOTS.get(approver.role)
        if slot is None:
            raise ForbiddenException("Only Admin or HR can approve leave requests.")

        leave_req = await LeaveService._get_request(db, request_id)
        if leave_req.status != LeaveStatus.pending:
            logger.warning(
                "Approval of %s request %s rejected by %s",
                leave_req.status.value, leave_req.id, approver.employee_code,
            )
            raise IllegalTransitionException(
                "LeaveRequest", leave_req.status.value, "approve"
            )

        employee = await LeaveService._get_employee(db, leave_req.employee_id)
        ledger_as_of = _ledger_date(leave_req, now.date())
        balance = await LeaveLedger.lock_balance(db, leave_req.employee_id, ledger_as_of)

        outcome = evaluate_approval(
            RequestSnapshot.model_validate(leave_req),
            LedgerSnapshot(balance=balance),
            ApprovalEvent(
                approver_id=approver.id, slot=slot, at=now, review_notes=review_notes,
            ),
            eligible=LeaveLedger.is_eligible(employee, now.date()),
        )

        # ── Compare-and-set: pending, own slot empty, other slot as read ─
        own_col, other_col = _SLOT_COLUMNS[slot]
        other_value = getattr(leave_req, other_col.key)
        values = outcome.request.model_dump(include=_OUTCOME_FIELDS)
        values["updated_at"] = now
        result = await db.execute(
            update(LeaveRequest)
            .where(
                LeaveRequest.id == leave_req.id,
                LeaveRequest.status == LeaveStatus.pending,
                own_col.is_(None),
                other_col.is_(None) if other_value is None else other_col == other_value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.refresh(leave_req)
            raise IllegalTransitionException(
                "LeaveRequest", leave_req.status.value, "approve"
            )

        companion: Optional[LeaveRequest] = None
        if outcome.completed:
            if outcome.ledger_delta > 0:
                await LeaveLedger.deduct(
                    db, leave_req.employee_id, outcome.ledger_delta, ledger_as_of,
                    now=now,
                )
            if outcome.companion is not None:
                companion = LeaveRequest(
                    **outcome.companion.model_dump(),
                    reason=leave_req.reason,
                    campaign_department=leave_req.campaign_department,
                    credits_year=leave_req.credits_year,
                    attendance_points_at_request=leave_req.attendance_points_at_request,
                    review_notes=outcome.request.review_notes,
                    vl_credits_applied=False,
                    vl_no_credit_reason=outcome.request.vl_no_credit_reason,
                )
                db.add(companion)
                await db.flush()

        await db.refresh(leave_req)

        # ── Audit ───────────────────────────────────────────────────
        await create_audit_entry(
            db,
            action="approve",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=approver.id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={
                "slot": slot.value,
                "status": leave_req.status.value,
                "review_notes": review_notes,
            },
        )
        if outcome.completed and leave_req.vl_no_credit_reason:
            await create_audit_entry(
                db,
                action="split",
                entity_type="leave_request",
                entity_id=leave_req.id,
                actor_id=approver.id,
                new_values={
                    **_audit_values(leave_req),
                    "reason": leave_req.vl_no_credit_reason,
                    "companion_id": str(companion.id) if companion else None,
                },
            )

        if outcome.completed:
            logger.info(
                "Approved %s request %s: %s credit(s) deducted%s",
                leave_req.leave_type.value, leave_req.id, leave_req.credits_deducted,
                f", companion {companion.id}" if companion else "",
            )
        else:
            logger.info(
                "Recorded %s approval on request %s by %s",
                slot.value, leave_req.id, approver.employee_code,
            )

        return LeaveService._build_request_response(
            leave_req, companion_id=companion.id if companion else None,
        )

    # ─────────────────────────────────────────────────────────────────
    # Deny Leave
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def deny_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver: Employee,
        *,
        review_notes: str,
        now: datetime,
    ) -> LeaveRequestOut:
        """Deny a pending request. No credit mutation."""

        if approver.role not in REVIEWER_ROLES:
            raise ForbiddenException("Only Admin or HR can deny leave requests.")

        notes = (review_notes or "").strip()
        if len(notes) < 10:
            raise ValidationException(
                {"review_notes": ["A denial reason of at least 10 characters is required."]}
            )

        leave_req = await LeaveService._get_request(db, request_id)
        if leave_req.status != LeaveStatus.pending:
            raise IllegalTransitionException(
                "LeaveRequest", leave_req.status.value, "deny"
            )

        result = await db.execute(
            update(LeaveRequest)
            .where(
                LeaveRequest.id == leave_req.id,
                LeaveRequest.status == LeaveStatus.pending,
            )
            .values(
                status=LeaveStatus.denied,
                reviewed_by=approver.id,
                reviewed_at=now,
                review_notes=notes,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await db.refresh(leave_req)
        if result.rowcount != 1:
            raise IllegalTransitionException(
                "LeaveRequest", leave_req.status.value, "deny"
            )

        await create_audit_entry(
            db,
            action="deny",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=approver.id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.denied.value, "review_notes": notes},
        )
        logger.info("Denied request %s by %s", leave_req.id, approver.employee_code)
        return LeaveService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Cancel Leave
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Employee,
        *,
        cancellation_reason: str,
        now: datetime,
    ) -> LeaveRequestOut:
        """Cancel a request (and its companion). Deducted credits stay deducted."""

        reason = (cancellation_reason or "").strip()
        if not reason:
            raise ValidationException(
                {"cancellation_reason": ["A cancellation reason is required."]}
            )

        leave_req = await LeaveService._get_request(db, request_id)
        decision = can_perform(
            LeaveAction.cancel,
            actor_role=actor.role,
            is_owner=leave_req.employee_id == actor.id,
            status=leave_req.status,
            is_split=leave_req.has_partial_credit or leave_req.is_companion,
            start_date=leave_req.start_date,
            end_date=leave_req.end_date,
            today=now.date(),
        )
        if not decision.allowed:
            logger.warning(
                "Cancellation of %s request %s by %s forbidden: %s",
                leave_req.status.value, leave_req.id, actor.employee_code, decision.reason,
            )
            raise ForbiddenException(decision.reason)

        old_status = leave_req.status.value
        companion = await LeaveService._get_companion(db, leave_req.id)

        for req in (leave_req, companion):
            if req is None or req.status in (LeaveStatus.cancelled, LeaveStatus.denied):
                continue
            req.status = LeaveStatus.cancelled
            req.cancelled_by = actor.id
            req.cancelled_at = now
            req.cancellation_reason = reason
            req.updated_at = now
        await db.flush()

        await create_audit_entry(
            db,
            action="cancel",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=actor.id,
            old_values={"status": old_status},
            new_values={
                "status": LeaveStatus.cancelled.value,
                "cancellation_reason": reason,
                "companion_id": str(companion.id) if companion else None,
            },
        )
        logger.info(
            "Cancelled request %s by %s (credits_deducted %s not restored)",
            leave_req.id, actor.employee_code, leave_req.credits_deducted,
        )
        return LeaveService._build_request_response(
            leave_req, companion_id=companion.id if companion else None,
        )

    # ─────────────────────────────────────────────────────────────────
    # Delete Leave
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def delete_leave(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Employee,
        *,
        today: date,
    ) -> None:
        """Delete a request (and its companion). The ledger is left untouched."""

        leave_req = await LeaveService._get_request(db, request_id)
        decision = can_perform(
            LeaveAction.delete,
            actor_role=actor.role,
            is_owner=leave_req.employee_id == actor.id,
            status=leave_req.status,
            is_split=leave_req.has_partial_credit,
            start_date=leave_req.start_date,
            end_date=leave_req.end_date,
            today=today,
        )
        if not decision.allowed:
            logger.warning(
                "Deletion of %s request %s by %s forbidden: %s",
                leave_req.status.value, leave_req.id, actor.employee_code, decision.reason,
            )
            raise ForbiddenException(decision.reason)

        old_values = _audit_values(leave_req)
        companion = await LeaveService._get_companion(db, leave_req.id)
        if companion is not None:
            old_values["companion_id"] = str(companion.id)
            await db.delete(companion)
            await db.flush()
        await db.delete(leave_req)
        await db.flush()

        await create_audit_entry(
            db,
            action="delete",
            entity_type="leave_request",
            entity_id=request_id,
            actor_id=actor.id,
            old_values=old_values,
        )
        logger.info(
            "Deleted %s request %s by %s (credits_deducted %s not restored)",
            old_values["status"], request_id, actor.employee_code,
            old_values["credits_deducted"],
        )

    # ─────────────────────────────────────────────────────────────────
    # Read operations
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave_request(
        db: AsyncSession, request_id: uuid.UUID, actor: Employee,
    ) -> LeaveRequestOut:
        leave_req = await LeaveService._get_request(db, request_id)
        if leave_req.employee_id != actor.id and actor.role not in REVIEWER_ROLES:
            raise ForbiddenException("You can only view your own leave requests.")
        companion = await LeaveService._get_companion(db, leave_req.id)
        return LeaveService._build_request_response(
            leave_req, companion_id=companion.id if companion else None,
        )

    @staticmethod
    async def list_leave_requests(
        db: AsyncSession,
        actor: Employee,
        *,
        employee_id: Optional[uuid.UUID] = None,
        status: Optional[LeaveStatus] = None,
        leave_type: Optional[LeaveType] = None,
        page: int = 1,
        page_size: int = 25,
    ) -> dict:
        """List requests. Admin / HR see everyone; others only their own."""

        query = select(LeaveRequest).order_by(
            LeaveRequest.start_date.desc(), LeaveRequest.created_at.desc(),
        )
        if actor.role in REVIEWER_ROLES:
            if employee_id:
                query = query.where(LeaveRequest.employee_id == employee_id)
        else:
            query = query.where(LeaveRequest.employee_id == actor.id)
        if status:
            query = query.where(LeaveRequest.status == status)
        if leave_type:
            query = query.where(LeaveRequest.leave_type == leave_type)

        rows, meta = await paginate(db, query, page=page, page_size=page_size)

        companions: dict[uuid.UUID, uuid.UUID] = {}
        ids = [r.id for r in rows]
        if ids:
            linked = await db.execute(
                select(LeaveRequest.linked_request_id, LeaveRequest.id).where(
                    LeaveRequest.linked_request_id.in_(ids)
                )
            )
            companions = {parent_id: child_id for parent_id, child_id in linked.all()}

        return {
            "data": [
                LeaveService._build_request_response(r, companion_id=companions.get(r.id))
                for r in rows
            ],
            "meta": meta,
        }

    @staticmethod
    async def get_credits_summary(
        db: AsyncSession,
        actor: Employee,
        *,
        employee_id: Optional[uuid.UUID] = None,
        today: date,
    ) -> CreditsSummaryOut:
        employee = actor
        if employee_id is not None and employee_id != actor.id:
            if actor.role not in REVIEWER_ROLES:
                raise ForbiddenException("You can only view your own leave credits.")
            employee = await LeaveService._get_employee(db, employee_id)
        return await LeaveLedger.get_summary(db, employee, today)
