"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from opsdesk.common.constants import LeaveDayType, LeaveStatus, LeaveType


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Create
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting a leave request."""

    leave_type: LeaveType
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    end_day_type: LeaveDayType = Field(
        LeaveDayType.full_day,
        description="full_day, or first_half / second_half when the last day is a half day",
    )
    reason: str = Field(..., min_length=10, max_length=1000)
    campaign_department: str = Field(..., min_length=1, max_length=255)
    employee_id: Optional[uuid.UUID] = Field(
        None, description="File on behalf of another employee (Admin only)"
    )
    short_notice_override: bool = Field(
        False, description="Bypass the advance-notice rule (Admin only)"
    )

    @field_validator("reason", "campaign_department", mode="before")
    @classmethod
    def strip_text(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveRequestCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date.")
        if self.end_day_type != LeaveDayType.full_day and self.end_date.weekday() >= 5:
            raise ValueError("A half day must fall on a working day.")
        return self


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: LeaveType
    start_date: date
    end_date: date
    days_requested: Decimal
    end_day_type: LeaveDayType = LeaveDayType.full_day
    reason: str
    campaign_department: Optional[str] = None
    status: LeaveStatus
    credits_deducted: Decimal
    credits_year: Optional[int] = None
    attendance_points_at_request: Decimal
    short_notice_override: bool = False
    admin_approved_by: Optional[uuid.UUID] = None
    admin_approved_at: Optional[datetime] = None
    hr_approved_by: Optional[uuid.UUID] = None
    hr_approved_at: Optional[datetime] = None
    reviewed_by: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    cancelled_by: Optional[uuid.UUID] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    linked_request_id: Optional[uuid.UUID] = None
    vl_credits_applied: bool = False
    vl_no_credit_reason: Optional[str] = None
    has_partial_credit: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Enriched by service
    companion_id: Optional[uuid.UUID] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Approve / Deny / Cancel
# ═════════════════════════════════════════════════════════════════════


class LeaveApproveRequest(BaseModel):
    """Payload for recording an Admin or HR approval."""

    review_notes: Optional[str] = Field(None, max_length=1000)


class LeaveDenyRequest(BaseModel):
    """Payload for denying a pending leave request."""

    review_notes: str = Field(..., min_length=10, max_length=1000)

    @field_validator("review_notes", mode="before")
    @classmethod
    def strip_notes(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v


class LeaveCancelRequest(BaseModel):
    """Payload for cancelling a leave request."""

    cancellation_reason: str = Field(..., min_length=1, max_length=1000)

    @field_validator("cancellation_reason")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("cancellation_reason must not be blank.")
        return v.strip()


# ═════════════════════════════════════════════════════════════════════
# Credits / day count
# ═════════════════════════════════════════════════════════════════════


class MonthlyCreditOut(BaseModel):
    """One ledger row in the credits summary."""

    model_config = ConfigDict(from_attributes=True)

    year: int
    month: int
    credits_earned: Decimal
    credits_used: Decimal
    credits_balance: Decimal
    accrued_at: Optional[date] = None


class CreditsSummaryOut(BaseModel):
    """Read-only credits-balance view for one employee and year."""

    employee_id: uuid.UUID
    year: int
    balance: Decimal
    total_earned: Decimal
    total_used: Decimal
    whole_balance: int
    pending_credits: Decimal
    is_eligible: bool
    eligibility_date: Optional[date] = None
    monthly_rate: Decimal
    credits_by_month: list[MonthlyCreditOut] = []


class DayCountOut(BaseModel):
    """Result of the day-count query."""

    start_date: date
    end_date: date
    days: int
    end_day_type: LeaveDayType = LeaveDayType.full_day
    total_days: Decimal
