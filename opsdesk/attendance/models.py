"""Attendance ORM models: AttendancePoint (violation points with roll-off)."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from opsdesk.common.constants import ExpirationType, PointType
from opsdesk.database import Base


class AttendancePoint(Base):
    """One attendance violation and the points it carries until it expires."""

    __tablename__ = "attendance_points"
    __table_args__ = (
        sa.Index("ix_attendance_points_employee_expired", "employee_id", "is_expired"),
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
    shift_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    point_type: Mapped[PointType] = mapped_column(
        sa.Enum(PointType, name="point_type"), nullable=False
    )
    points: Mapped[Decimal] = mapped_column(sa.Numeric(5, 2), nullable=False)
    is_advised: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    is_excused: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    eligible_for_gbro: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=True
    )
    expiration_type: Mapped[ExpirationType] = mapped_column(
        sa.Enum(ExpirationType, name="expiration_type"),
        nullable=False,
        default=ExpirationType.sro,
    )
    expires_at: Mapped[Optional[date]] = mapped_column(sa.Date)
    is_expired: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    expired_at: Mapped[Optional[date]] = mapped_column(sa.Date)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    employee: Mapped["opsdesk.core_hr.models.Employee"] = relationship(
        back_populates="attendance_points"
    )

    @property
    def is_ncns(self) -> bool:
        """No call, no show: an unadvised whole-day absence."""
        return self.point_type == PointType.whole_day_absence and not self.is_advised
