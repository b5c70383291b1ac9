"""Attendance point Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from opsdesk.common.constants import ExpirationType, PointType


class AttendancePointOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    shift_date: date
    point_type: PointType
    points: Decimal
    is_advised: bool
    is_excused: bool
    eligible_for_gbro: bool = True
    expiration_type: ExpirationType
    expires_at: Optional[date] = None
    is_expired: bool
    expired_at: Optional[date] = None


class ActivePointsOut(BaseModel):
    """Active (non-expired, non-excused) points for one employee."""

    employee_id: uuid.UUID
    total_points: Decimal
    points: list[AttendancePointOut] = []
