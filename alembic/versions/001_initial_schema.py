"""001 – Initial schema: employees, leave ledger, leave requests, points, audit.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000+08:00
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    (
        "user_role",
        ["super_admin", "admin", "hr", "team_lead", "agent", "it", "utility"],
    ),
    ("leave_type", ["VL", "SL", "BL", "SPL", "LOA", "LDV", "UPTO"]),
    ("leave_status", ["pending", "approved", "denied", "cancelled"]),
    ("leave_day_type", ["full_day", "first_half", "second_half"]),
    (
        "point_type",
        ["whole_day_absence", "half_day_absence", "undertime", "tardy"],
    ),
    ("expiration_type", ["sro", "gbro", "none"]),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. employees ──────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE employees (
            id             UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_code  VARCHAR(20)  NOT NULL UNIQUE,
            first_name     VARCHAR(100) NOT NULL,
            last_name      VARCHAR(100) NOT NULL,
            email          VARCHAR(255) NOT NULL UNIQUE,
            role           user_role NOT NULL DEFAULT 'agent',
            hired_date     DATE,
            campaign       VARCHAR(255),
            is_active      BOOLEAN NOT NULL DEFAULT TRUE,
            created_at     TIMESTAMPTZ DEFAULT NOW(),
            updated_at     TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. leave_credits (ledger) ─────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_credits (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id      UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            year             INTEGER NOT NULL,
            month            INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
            credits_earned   NUMERIC(5,2) NOT NULL DEFAULT 0,
            credits_used     NUMERIC(5,2) NOT NULL DEFAULT 0,
            credits_balance  NUMERIC(5,2) NOT NULL DEFAULT 0,
            accrued_at       DATE,
            created_at       TIMESTAMPTZ DEFAULT NOW(),
            updated_at       TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_credit_month UNIQUE (employee_id, year, month),
            CONSTRAINT ck_leave_credit_balance CHECK (credits_balance >= 0)
        )
    """)

    # ── 3. leave_requests ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_requests (
            id                            UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id                   UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            leave_type                    leave_type NOT NULL,
            start_date                    DATE NOT NULL,
            end_date                      DATE NOT NULL,
            days_requested                NUMERIC(5,2) NOT NULL,
            end_day_type                  leave_day_type NOT NULL DEFAULT 'full_day',
            reason                        TEXT NOT NULL,
            campaign_department           VARCHAR(255),
            status                        leave_status NOT NULL DEFAULT 'pending',
            credits_deducted              NUMERIC(5,2) NOT NULL DEFAULT 0,
            credits_year                  INTEGER,
            attendance_points_at_request  NUMERIC(5,2) NOT NULL DEFAULT 0,
            short_notice_override         BOOLEAN NOT NULL DEFAULT FALSE,
            admin_approved_by             UUID REFERENCES employees(id) ON DELETE SET NULL,
            admin_approved_at             TIMESTAMPTZ,
            hr_approved_by                UUID REFERENCES employees(id) ON DELETE SET NULL,
            hr_approved_at                TIMESTAMPTZ,
            reviewed_by                   UUID REFERENCES employees(id) ON DELETE SET NULL,
            reviewed_at                   TIMESTAMPTZ,
            review_notes                  TEXT,
            cancelled_by                  UUID REFERENCES employees(id) ON DELETE SET NULL,
            cancelled_at                  TIMESTAMPTZ,
            cancellation_reason           TEXT,
            linked_request_id             UUID UNIQUE REFERENCES leave_requests(id) ON DELETE CASCADE,
            vl_credits_applied            BOOLEAN NOT NULL DEFAULT FALSE,
            vl_no_credit_reason           TEXT,
            has_partial_credit            BOOLEAN NOT NULL DEFAULT FALSE,
            created_at                    TIMESTAMPTZ DEFAULT NOW(),
            updated_at                    TIMESTAMPTZ DEFAULT NOW(),
            CHECK (end_date >= start_date)
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_requests_employee_status
            ON leave_requests(employee_id, status)
    """)
    op.execute("""
        CREATE INDEX idx_leave_req_emp_dates
            ON leave_requests(employee_id, start_date, end_date)
    """)

    # ── 4. attendance_points ──────────────────────────────────────────────
    op.execute("""
        CREATE TABLE attendance_points (
            id               UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            employee_id      UUID NOT NULL REFERENCES employees(id) ON DELETE CASCADE,
            shift_date       DATE NOT NULL,
            point_type       point_type NOT NULL,
            points           NUMERIC(5,2) NOT NULL,
            is_advised       BOOLEAN NOT NULL DEFAULT FALSE,
            is_excused       BOOLEAN NOT NULL DEFAULT FALSE,
            eligible_for_gbro BOOLEAN NOT NULL DEFAULT TRUE,
            expiration_type  expiration_type NOT NULL DEFAULT 'sro',
            expires_at       DATE,
            is_expired       BOOLEAN NOT NULL DEFAULT FALSE,
            expired_at       DATE,
            created_at       TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX ix_attendance_points_employee_expired
            ON attendance_points(employee_id, is_expired)
    """)

    # ── 5. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id     UUID REFERENCES employees(id) ON DELETE SET NULL,
            action       VARCHAR(50) NOT NULL,
            entity_type  VARCHAR(50) NOT NULL,
            entity_id    UUID NOT NULL,
            old_values   JSONB,
            new_values   JSONB,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id ON audit_trail(actor_id)")
    op.execute(
        "CREATE INDEX ix_audit_trail_entity ON audit_trail(entity_type, entity_id)"
    )
    op.execute("CREATE INDEX ix_audit_trail_action ON audit_trail(action)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    tables = [
        "audit_trail",
        "attendance_points",
        "leave_requests",
        "leave_credits",
        "employees",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
