"""Common module — shared utilities for the leave bot."""

from leavebot.common.audit import AuditTrail, create_audit_entry
from leavebot.common.constants import (
    DATE_FORMAT,
    SHORTFALL_TYPES,
    TIME_FORMAT,
    Decision,
    LeaveRequestType,
    LeaveStatus,
    NotificationType,
)
from leavebot.common.exceptions import (
    AlreadyDecidedError,
    AppException,
    ConflictError,
    ForbiddenException,
    NotFoundException,
    StoreError,
    ValidationException,
    register_exception_handlers,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "Decision",
    "LeaveRequestType",
    "LeaveStatus",
    "NotificationType",
    "SHORTFALL_TYPES",
    "DATE_FORMAT",
    "TIME_FORMAT",
    # Exceptions
    "AlreadyDecidedError",
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "NotFoundException",
    "StoreError",
    "ValidationException",
    "register_exception_handlers",
]
