"""Common module — shared utilities for OpsDesk."""

from opsdesk.common.audit import AuditTrail, create_audit_entry
from opsdesk.common.constants import (
    ADMIN_ROLES,
    APPROVER_SLOTS,
    DATE_FORMAT,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    ApproverSlot,
    ExpirationType,
    LeaveDayType,
    LeaveStatus,
    LeaveType,
    PointType,
    UserRole,
)
from opsdesk.common.exceptions import (
    AppException,
    DuplicateRequestException,
    ForbiddenException,
    IllegalTransitionException,
    InsufficientCreditException,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from opsdesk.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "ADMIN_ROLES",
    "APPROVER_SLOTS",
    "ApproverSlot",
    "ExpirationType",
    "LeaveDayType",
    "LeaveStatus",
    "LeaveType",
    "PointType",
    "UserRole",
    "DATE_FORMAT",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "DuplicateRequestException",
    "ForbiddenException",
    "IllegalTransitionException",
    "InsufficientCreditException",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
