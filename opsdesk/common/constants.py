"""Enums and constants for OpsDesk — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum
from decimal import Decimal


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    super_admin = "super_admin"
    admin = "admin"
    hr = "hr"
    team_lead = "team_lead"
    agent = "agent"
    it = "it"
    utility = "utility"


class ApproverSlot(str, enum.Enum):
    admin = "admin"
    hr = "hr"


# Which approval slot each role fills (roles absent here cannot approve)
APPROVER_SLOTS: dict[UserRole, ApproverSlot] = {
    UserRole.super_admin: ApproverSlot.admin,
    UserRole.admin: ApproverSlot.admin,
    UserRole.hr: ApproverSlot.hr,
}

ADMIN_ROLES: frozenset[UserRole] = frozenset({UserRole.super_admin, UserRole.admin})
REVIEWER_ROLES: frozenset[UserRole] = frozenset(APPROVER_SLOTS)

# Roles accruing the manager monthly rate
MANAGER_ROLES: frozenset[UserRole] = frozenset({
    UserRole.super_admin,
    UserRole.admin,
    UserRole.team_lead,
    UserRole.hr,
})


# ── Leave ───────────────────────────────────────────────────────────

class LeaveType(str, enum.Enum):
    VL = "VL"        # Vacation Leave
    SL = "SL"        # Sick Leave
    BL = "BL"        # Bereavement Leave
    SPL = "SPL"      # Solo Parent Leave
    LOA = "LOA"      # Leave of Absence
    LDV = "LDV"      # Leave Due to Domestic Violence
    UPTO = "UPTO"    # Unpaid Personal Time Off


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    denied = "denied"
    cancelled = "cancelled"


class LeaveDayType(str, enum.Enum):
    full_day = "full_day"
    first_half = "first_half"
    second_half = "second_half"


# Leave types whose approval runs the credit split / conversion policy
SPLIT_LEAVE_TYPES: frozenset[LeaveType] = frozenset({LeaveType.VL, LeaveType.SL})

# Leave types gated by attendance points and advance notice at submission
VACATION_LIKE_TYPES: frozenset[LeaveType] = frozenset({LeaveType.VL, LeaveType.BL})

# Leave types that draw from the credit ledger (pending-credit summary)
CREDITED_LEAVE_TYPES: frozenset[LeaveType] = frozenset({
    LeaveType.VL,
    LeaveType.SL,
    LeaveType.BL,
})


# ── Attendance points ───────────────────────────────────────────────

class PointType(str, enum.Enum):
    whole_day_absence = "whole_day_absence"
    half_day_absence = "half_day_absence"
    undertime = "undertime"
    tardy = "tardy"


class ExpirationType(str, enum.Enum):
    sro = "sro"      # Standard roll-off
    gbro = "gbro"    # Good behaviour roll-off
    none = "none"


POINT_VALUES: dict[PointType, Decimal] = {
    PointType.whole_day_absence: Decimal("1.00"),
    PointType.half_day_absence: Decimal("0.50"),
    PointType.undertime: Decimal("0.25"),
    PointType.tardy: Decimal("0.25"),
}

SRO_EXPIRY_MONTHS = 6
NCNS_EXPIRY_MONTHS = 12
GBRO_CLEAN_DAYS = 60
GBRO_BATCH_SIZE = 2


# ── Misc constants ──────────────────────────────────────────────────

DATE_FORMAT = "%B %d, %Y"
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 25
