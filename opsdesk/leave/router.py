"""Leave router — submit, review, cancel/delete, credits, day count.

All endpoints require authentication. Review endpoints enforce the
Admin / HR roles; cancellation and deletion defer to the capability table.
"""


import uuid
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi import status as http_status
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.auth.dependencies import get_current_user, require_role
from opsdesk.common.constants import LeaveDayType, LeaveStatus, LeaveType, UserRole
from opsdesk.common.exceptions import ValidationException
from opsdesk.common.pagination import PaginatedResponse, PaginationParams
from opsdesk.common.rate_limit import limiter
from opsdesk.core_hr.models import Employee
from opsdesk.database import get_db
from opsdesk.leave.policy import count_leave_days, leave_day_total
from opsdesk.leave.schemas import (
    CreditsSummaryOut,
    DayCountOut,
    LeaveApproveRequest,
    LeaveCancelRequest,
    LeaveDenyRequest,
    LeaveRequestCreate,
    LeaveRequestOut,
)
from opsdesk.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _today() -> date:
    return _now().date()


# ── POST /apply ─────────────────────────────────────────────────────

@router.post(
    "/apply",
    response_model=LeaveRequestOut,
    status_code=http_status.HTTP_201_CREATED,
)
@limiter.limit("30/minute")
async def apply_leave(
    request: Request,
    body: LeaveRequestCreate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Submit a leave request. Runs date, duplicate, points, notice and credit gates."""
    return await LeaveService.submit_leave(db, employee, body, today=_today())


# ── GET /requests ───────────────────────────────────────────────────

@router.get("/requests", response_model=PaginatedResponse[LeaveRequestOut])
async def list_requests(
    status: Optional[LeaveStatus] = Query(None),
    leave_type: Optional[LeaveType] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List leave requests. Admin / HR see all employees; others see their own."""
    return await LeaveService.list_leave_requests(
        db,
        employee,
        employee_id=employee_id,
        status=status,
        leave_type=leave_type,
        page=pagination.page,
        page_size=pagination.page_size,
    )


# ── GET /requests/{id} ──────────────────────────────────────────────

@router.get("/requests/{request_id}", response_model=LeaveRequestOut)
async def get_request(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave_request(db, request_id, employee)


# ── PUT /{id}/approve ───────────────────────────────────────────────

@router.put("/{request_id}/approve", response_model=LeaveRequestOut)
@limiter.limit("60/minute")
async def approve_leave(
    request: Request,
    request_id: uuid.UUID,
    body: LeaveApproveRequest,
    employee: Employee = Depends(require_role(UserRole.admin, UserRole.hr)),
    db: AsyncSession = Depends(get_db),
):
    """Record an Admin or HR approval. The second approval applies the credit split."""
    return await LeaveService.approve_leave(
        db, request_id, employee, review_notes=body.review_notes, now=_now(),
    )


# ── PUT /{id}/deny ──────────────────────────────────────────────────

@router.put("/{request_id}/deny", response_model=LeaveRequestOut)
async def deny_leave(
    request_id: uuid.UUID,
    body: LeaveDenyRequest,
    employee: Employee = Depends(require_role(UserRole.admin, UserRole.hr)),
    db: AsyncSession = Depends(get_db),
):
    """Deny a pending leave request."""
    return await LeaveService.deny_leave(
        db, request_id, employee, review_notes=body.review_notes, now=_now(),
    )


# ── PUT /{id}/cancel ────────────────────────────────────────────────

@router.put("/{request_id}/cancel", response_model=LeaveRequestOut)
async def cancel_leave(
    request_id: uuid.UUID,
    body: LeaveCancelRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a leave request. Deducted credits are not restored."""
    return await LeaveService.cancel_leave(
        db,
        request_id,
        employee,
        cancellation_reason=body.cancellation_reason,
        now=_now(),
    )


# ── DELETE /{id} ────────────────────────────────────────────────────

@router.delete("/{request_id}", status_code=http_status.HTTP_204_NO_CONTENT)
async def delete_leave(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Delete a leave request and its companion. Deducted credits are not restored."""
    await LeaveService.delete_leave(db, request_id, employee, today=_today())


# ── GET /credits ────────────────────────────────────────────────────

@router.get("/credits", response_model=CreditsSummaryOut)
async def get_credits(
    employee_id: Optional[uuid.UUID] = Query(
        None, description="Another employee's credits (Admin / HR only)"
    ),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Credits balance, earned and used for the current year."""
    return await LeaveService.get_credits_summary(
        db, employee, employee_id=employee_id, today=_today(),
    )


# ── GET /calculate-days ─────────────────────────────────────────────

@router.get("/calculate-days", response_model=DayCountOut)
async def calculate_days(
    start_date: date = Query(...),
    end_date: date = Query(...),
    end_day_type: LeaveDayType = Query(LeaveDayType.full_day),
    employee: Employee = Depends(get_current_user),
):
    """Count weekdays in ``[start_date, end_date]``, and the leave days they make up."""
    if end_date < start_date:
        raise ValidationException(
            {"end_date": ["end_date must be on or after start_date."]}
        )
    return DayCountOut(
        start_date=start_date,
        end_date=end_date,
        days=count_leave_days(start_date, end_date),
        end_day_type=end_day_type,
        total_days=leave_day_total(start_date, end_date, end_day_type),
    )
