"""Capability table for leave request cancellation and deletion.

(role, action, status, timing) → allow / forbid, evaluated as a pure
function so every cell can be tested without a database.
"""

from __future__ import annotations

import enum
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict

from opsdesk.common.constants import ADMIN_ROLES, LeaveStatus, UserRole


class LeaveAction(str, enum.Enum):
    cancel = "cancel"
    delete = "delete"


class CapabilityDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: Optional[str] = None


_ALLOW = CapabilityDecision(allowed=True)


def _forbid(reason: str) -> CapabilityDecision:
    return CapabilityDecision(allowed=False, reason=reason)


def can_perform(
    action: LeaveAction,
    *,
    actor_role: UserRole,
    is_owner: bool,
    status: LeaveStatus,
    is_split: bool,
    start_date: date,
    end_date: date,
    today: date,
) -> CapabilityDecision:
    """Return whether *actor_role* may perform *action* on a request.

    ``is_split`` is the recorded partial-credit flag of the request;
    ``today`` is the caller's business date.
    """
    is_admin = actor_role in ADMIN_ROLES

    if action == LeaveAction.delete:
        if is_admin:
            return _ALLOW
        if is_owner and status in (LeaveStatus.cancelled, LeaveStatus.denied):
            return _ALLOW
        if is_owner:
            return _forbid(
                f"Only cancelled or denied requests can be deleted; this one is {status.value}."
            )
        return _forbid("You can only delete your own leave requests.")

    # ── cancel ──────────────────────────────────────────────────────
    if status in (LeaveStatus.denied, LeaveStatus.cancelled):
        return _forbid(f"A {status.value} leave request cannot be cancelled.")

    if status == LeaveStatus.pending:
        if is_owner or is_admin or actor_role == UserRole.hr:
            return _ALLOW
        return _forbid("You can only cancel your own leave requests.")

    # approved
    if is_split:
        if not (is_owner or is_admin):
            return _forbid("You can only cancel your own leave requests.")
        if end_date < today:
            return _forbid("This leave period has already ended.")
        return _ALLOW

    if start_date <= today:
        return _forbid(
            "An approved leave that has already started or ended cannot be cancelled."
        )
    if is_admin:
        return _ALLOW
    return _forbid("Only an Admin can cancel an approved leave request.")
