"""Leave ORM models: LeaveCredit (the monthly ledger row) and LeaveRequest."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from opsdesk.common.constants import LeaveDayType, LeaveStatus, LeaveType
from opsdesk.database import Base


class LeaveCredit(Base):
    """Credits earned and used by one employee in one (year, month).

    Rows are created by the accrual job and only ever decremented by the
    approval path; ``credits_balance`` always equals earned − used.
    """

    __tablename__ = "leave_credits"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "year", "month", name="uq_leave_credit_month"
        ),
        sa.CheckConstraint("credits_balance >= 0", name="ck_leave_credit_balance"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    month: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    credits_earned: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 2), nullable=False, default=Decimal("0")
    )
    credits_used: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 2), nullable=False, default=Decimal("0")
    )
    credits_balance: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 2), nullable=False, default=Decimal("0")
    )
    accrued_at: Mapped[Optional[date]] = mapped_column(sa.Date)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    employee: Mapped["opsdesk.core_hr.models.Employee"] = relationship(
        back_populates="leave_credits"
    )


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.Index("ix_leave_requests_employee_status", "employee_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    leave_type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    days_requested: Mapped[Decimal] = mapped_column(sa.Numeric(5, 2), nullable=False)
    end_day_type: Mapped[LeaveDayType] = mapped_column(
        sa.Enum(LeaveDayType, name="leave_day_type"),
        nullable=False,
        default=LeaveDayType.full_day,
    )
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    campaign_department: Mapped[Optional[str]] = mapped_column(sa.String(255))
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        nullable=False,
        default=LeaveStatus.pending,
    )
    credits_deducted: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 2), nullable=False, default=Decimal("0")
    )
    credits_year: Mapped[Optional[int]] = mapped_column(sa.Integer)
    attendance_points_at_request: Mapped[Decimal] = mapped_column(
        sa.Numeric(5, 2), nullable=False, default=Decimal("0")
    )
    short_notice_override: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False
    )

    # Dual approval
    admin_approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id", ondelete="SET NULL")
    )
    admin_approved_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    hr_approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id", ondelete="SET NULL")
    )
    hr_approved_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id", ondelete="SET NULL")
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    review_notes: Mapped[Optional[str]] = mapped_column(sa.Text)

    # Cancellation
    cancelled_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id", ondelete="SET NULL")
    )
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(sa.Text)

    # Credit split outcome
    linked_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("leave_requests.id", ondelete="CASCADE"),
        unique=True,
    )
    vl_credits_applied: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False
    )
    vl_no_credit_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    has_partial_credit: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False
    )

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    employee: Mapped["opsdesk.core_hr.models.Employee"] = relationship(
        back_populates="leave_requests", foreign_keys=[employee_id]
    )
    parent: Mapped[Optional[LeaveRequest]] = relationship(
        remote_side=[id], back_populates="companion",
    )
    companion: Mapped[Optional[LeaveRequest]] = relationship(
        back_populates="parent", uselist=False, passive_deletes=True,
    )

    @property
    def is_companion(self) -> bool:
        return self.linked_request_id is not None

    def __repr__(self) -> str:
        return (
            f"<LeaveRequest {self.leave_type.value} {self.start_date}→{self.end_date} "
            f"{self.status.value}>"
        )
