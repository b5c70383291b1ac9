"""Attendance point service — active totals, expiration dates, roll-off.

Business logic:
  - Active points = non-expired, non-excused rows
  - NCNS (unadvised whole-day absence) rolls off after 12 months, everything
    else after 6 months (standard roll-off)
  - Roll-off run marks due rows expired as of a given date
  - Good behaviour roll-off: 60 clean days expire the two newest points,
    and every further 60 clean days the next two (NCNS never qualifies)
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.attendance.models import AttendancePoint
from opsdesk.attendance.schemas import ActivePointsOut, AttendancePointOut
from opsdesk.common.constants import (
    GBRO_BATCH_SIZE,
    GBRO_CLEAN_DAYS,
    NCNS_EXPIRY_MONTHS,
    POINT_VALUES,
    SRO_EXPIRY_MONTHS,
    ExpirationType,
    PointType,
)
from opsdesk.leave.ledger import add_months

logger = logging.getLogger(__name__)


def _active_filter(employee_id: uuid.UUID):
    return (
        AttendancePoint.employee_id == employee_id,
        AttendancePoint.is_expired.is_(False),
        AttendancePoint.is_excused.is_(False),
    )


class AttendanceService:

    @staticmethod
    def calculate_expiration(
        point_type: PointType, shift_date: date, is_advised: bool,
    ) -> date:
        if point_type == PointType.whole_day_absence and not is_advised:
            return add_months(shift_date, NCNS_EXPIRY_MONTHS)
        return add_months(shift_date, SRO_EXPIRY_MONTHS)

    @staticmethod
    async def record_point(
        db: AsyncSession,
        employee_id: uuid.UUID,
        point_type: PointType,
        shift_date: date,
        *,
        is_advised: bool = False,
    ) -> AttendancePoint:
        """Record a violation with its standard point value and roll-off date."""
        is_ncns = point_type == PointType.whole_day_absence and not is_advised
        point = AttendancePoint(
            employee_id=employee_id,
            shift_date=shift_date,
            point_type=point_type,
            points=POINT_VALUES[point_type],
            is_advised=is_advised,
            eligible_for_gbro=not is_ncns,
            expiration_type=ExpirationType.sro,
            expires_at=AttendanceService.calculate_expiration(
                point_type, shift_date, is_advised,
            ),
        )
        db.add(point)
        await db.flush()
        return point

    @staticmethod
    async def get_active_points(db: AsyncSession, employee_id: uuid.UUID) -> Decimal:
        result = await db.execute(
            select(func.coalesce(func.sum(AttendancePoint.points), 0)).where(
                *_active_filter(employee_id)
            )
        )
        return Decimal(str(result.scalar_one())).quantize(Decimal("0.01"))

    @staticmethod
    async def get_last_absence(
        db: AsyncSession, employee_id: uuid.UUID, *, on_or_before: date,
    ) -> Optional[date]:
        """Shift date of the latest unexcused whole-day absence up to *on_or_before*."""
        result = await db.execute(
            select(func.max(AttendancePoint.shift_date)).where(
                AttendancePoint.employee_id == employee_id,
                AttendancePoint.point_type == PointType.whole_day_absence,
                AttendancePoint.is_excused.is_(False),
                AttendancePoint.shift_date <= on_or_before,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_points_summary(
        db: AsyncSession, employee_id: uuid.UUID,
    ) -> ActivePointsOut:
        rows = (
            await db.execute(
                select(AttendancePoint)
                .where(*_active_filter(employee_id))
                .order_by(AttendancePoint.shift_date.desc())
            )
        ).scalars().all()
        return ActivePointsOut(
            employee_id=employee_id,
            total_points=await AttendanceService.get_active_points(db, employee_id),
            points=[AttendancePointOut.model_validate(r) for r in rows],
        )

    @staticmethod
    async def process_expirations(db: AsyncSession, *, today: date) -> int:
        """Expire every standard roll-off point due on or before *today*."""
        result = await db.execute(
            update(AttendancePoint)
            .where(
                AttendancePoint.is_expired.is_(False),
                AttendancePoint.expiration_type == ExpirationType.sro,
                AttendancePoint.expires_at.is_not(None),
                AttendancePoint.expires_at <= today,
            )
            .values(is_expired=True, expired_at=today)
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount or 0
        if count:
            logger.info("Expired %d attendance point(s) as of %s", count, today)
        return count

    @staticmethod
    async def process_good_behavior_roll_off(db: AsyncSession, *, today: date) -> int:
        """Expire the newest points of employees with a clean 60-day stretch.

        A roll-off falls ``GBRO_CLEAN_DAYS`` after the later of the newest
        active violation and the previous roll-off. Each roll-off due on or
        before *today* expires the ``GBRO_BATCH_SIZE`` newest active points
        and starts the next clean stretch from its own date, so a late run
        expires the same points as a daily one would have.
        """
        rows = (
            await db.execute(
                select(AttendancePoint)
                .where(
                    AttendancePoint.is_expired.is_(False),
                    AttendancePoint.is_excused.is_(False),
                    AttendancePoint.eligible_for_gbro.is_(True),
                )
                .order_by(AttendancePoint.employee_id, AttendancePoint.shift_date.desc())
            )
        ).scalars().all()

        by_employee: dict[uuid.UUID, list[AttendancePoint]] = {}
        for row in rows:
            by_employee.setdefault(row.employee_id, []).append(row)

        previous_rolloffs = dict(
            (
                await db.execute(
                    select(AttendancePoint.employee_id, func.max(AttendancePoint.expired_at))
                    .where(
                        AttendancePoint.is_expired.is_(True),
                        AttendancePoint.expiration_type == ExpirationType.gbro,
                    )
                    .group_by(AttendancePoint.employee_id)
                )
            ).all()
        )

        expired = 0
        for employee_id, points in by_employee.items():
            reference = points[0].shift_date
            previous = previous_rolloffs.get(employee_id)
            if previous is not None and previous > reference:
                reference = previous

            rolloff = reference + timedelta(days=GBRO_CLEAN_DAYS)
            while points and rolloff <= today:
                batch, points = points[:GBRO_BATCH_SIZE], points[GBRO_BATCH_SIZE:]
                for point in batch:
                    point.is_expired = True
                    point.expiration_type = ExpirationType.gbro
                    point.expired_at = rolloff
                expired += len(batch)
                logger.info(
                    "Good behaviour roll-off on %s expired %d point(s) for employee %s",
                    rolloff, len(batch), employee_id,
                )
                rolloff += timedelta(days=GBRO_CLEAN_DAYS)

        if expired:
            await db.flush()
        return expired
