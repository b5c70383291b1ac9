"""Attendance router — active attendance points.

All endpoints require authentication. Viewing another employee's points
requires an Admin or HR role.
"""


import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.attendance.schemas import ActivePointsOut
from opsdesk.attendance.service import AttendanceService
from opsdesk.auth.dependencies import get_current_user, require_role
from opsdesk.common.constants import UserRole
from opsdesk.core_hr.models import Employee
from opsdesk.database import get_db

router = APIRouter(prefix="", tags=["attendance"])


# ── GET /points/me ──────────────────────────────────────────────────

@router.get("/points/me", response_model=ActivePointsOut)
async def my_points(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Active attendance points for the authenticated user."""
    return await AttendanceService.get_points_summary(db, employee.id)


# ── GET /points/{employee_id} ───────────────────────────────────────

@router.get("/points/{employee_id}", response_model=ActivePointsOut)
async def employee_points(
    employee_id: uuid.UUID,
    employee: Employee = Depends(require_role(UserRole.admin, UserRole.hr)),
    db: AsyncSession = Depends(get_db),
):
    """Active attendance points for any employee (Admin / HR)."""
    return await AttendanceService.get_points_summary(db, employee_id)
