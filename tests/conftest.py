"""Shared test fixtures — async DB, client, auth helpers, factories.

Reusable across all test modules (ledger, policy, lifecycle, attendance, API).
Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from opsdesk.attendance.models import AttendancePoint
from opsdesk.auth.service import create_access_token
from opsdesk.common.constants import (
    POINT_VALUES,
    ExpirationType,
    LeaveDayType,
    LeaveStatus,
    LeaveType,
    PointType,
    UserRole,
)
from opsdesk.config import settings
from opsdesk.core_hr.models import Employee
from opsdesk.database import Base, get_db
from opsdesk.leave.models import LeaveCredit, LeaveRequest
from opsdesk.main import create_app

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
import opsdesk.common.audit  # noqa: F401

# ── SQLite compat: compile PG-specific types ────────────────────────

from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine.sync_engine, "connect")
def _register_sqlite_functions(dbapi_conn, connection_record):
    """Register NOW() as a SQLite custom function."""
    dbapi_conn.create_function(
        "NOW", 0, lambda: datetime.now(timezone.utc).isoformat(),
    )

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from opsdesk.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

def _make_employee(
    *,
    role: UserRole = UserRole.agent,
    first_name: str = "Test",
    last_name: str = "User",
    email: Optional[str] = None,
    hired_date: Optional[date] = date(2024, 1, 15),
) -> dict:
    code = uuid.uuid4().hex[:6].upper()
    return dict(
        id=uuid.uuid4(),
        employee_code=f"OD-{code}",
        first_name=first_name,
        last_name=last_name,
        email=email or f"{first_name.lower()}.{code.lower()}@opsdesk.local",
        role=role,
        hired_date=hired_date,
        campaign="Inbound Support",
        is_active=True,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


async def _seed_employee(db: AsyncSession, **kwargs) -> Employee:
    emp = Employee(**_make_employee(**kwargs))
    db.add(emp)
    await db.flush()
    return emp


async def _seed_credits(
    db: AsyncSession,
    employee_id: uuid.UUID,
    balances: dict[int, Decimal],
    *,
    year: int = 2026,
) -> list[LeaveCredit]:
    """One ledger row per ``{month: balance}`` entry, nothing used yet."""
    rows = []
    for month, amount in balances.items():
        row = LeaveCredit(
            id=uuid.uuid4(),
            employee_id=employee_id,
            year=year,
            month=month,
            credits_earned=Decimal(amount),
            credits_used=Decimal("0"),
            credits_balance=Decimal(amount),
            accrued_at=date(year, month, 28),
        )
        db.add(row)
        rows.append(row)
    await db.flush()
    return rows


async def _seed_point(
    db: AsyncSession,
    employee_id: uuid.UUID,
    *,
    point_type: PointType = PointType.whole_day_absence,
    shift_date: date = date(2026, 2, 2),
    points: Optional[Decimal] = None,
    is_excused: bool = False,
    is_expired: bool = False,
    expires_at: Optional[date] = None,
    eligible_for_gbro: bool = True,
    expiration_type: ExpirationType = ExpirationType.sro,
    expired_at: Optional[date] = None,
) -> AttendancePoint:
    point = AttendancePoint(
        id=uuid.uuid4(),
        employee_id=employee_id,
        shift_date=shift_date,
        point_type=point_type,
        points=points if points is not None else POINT_VALUES[point_type],
        is_excused=is_excused,
        is_expired=is_expired,
        eligible_for_gbro=eligible_for_gbro,
        expiration_type=expiration_type,
        expires_at=expires_at,
        expired_at=expired_at,
    )
    db.add(point)
    await db.flush()
    return point


async def _seed_request(
    db: AsyncSession,
    employee_id: uuid.UUID,
    *,
    leave_type: LeaveType = LeaveType.VL,
    start_date: date = date(2026, 3, 16),
    end_date: date = date(2026, 3, 18),
    days_requested: Decimal = Decimal("3"),
    end_day_type: LeaveDayType = LeaveDayType.full_day,
    status: LeaveStatus = LeaveStatus.pending,
    credits_deducted: Decimal = Decimal("0"),
    credits_year: Optional[int] = None,
) -> LeaveRequest:
    """Insert a request directly, bypassing the submission gates."""
    req = LeaveRequest(
        id=uuid.uuid4(),
        employee_id=employee_id,
        leave_type=leave_type,
        start_date=start_date,
        end_date=end_date,
        days_requested=days_requested,
        end_day_type=end_day_type,
        reason="Seeded leave request for tests",
        campaign_department="Inbound Support",
        status=status,
        credits_deducted=credits_deducted,
        credits_year=credits_year or start_date.year,
    )
    db.add(req)
    await db.flush()
    return req


# ── Auth helpers ────────────────────────────────────────────────────

def auth_headers_for(employee: Employee) -> dict[str, str]:
    token, _ = create_access_token(employee)
    return {"Authorization": f"Bearer {token}"}


def create_expired_token(employee_id: uuid.UUID, role: UserRole = UserRole.agent) -> str:
    payload = {
        "sub": str(employee_id),
        "role": role.value,
        "type": "access",
        "exp": datetime.now(timezone.utc) - timedelta(hours=1),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
