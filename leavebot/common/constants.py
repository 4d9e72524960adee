"""Enums and constants for the leave bot — matching the stored string values."""

from __future__ import annotations

import enum


# ── Leave requests ──────────────────────────────────────────────────

class LeaveRequestType(str, enum.Enum):
    intermediate = "intermediate"
    planned = "planned"
    early_logout = "early_logout"
    late_login = "late_login"


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    denied = "denied"


class Decision(str, enum.Enum):
    approve = "approve"
    deny = "deny"


SHORTFALL_TYPES = frozenset({LeaveRequestType.early_logout, LeaveRequestType.late_login})


# ── Notifications ───────────────────────────────────────────────────

class NotificationType(str, enum.Enum):
    info = "info"
    action_required = "action_required"
    approval = "approval"
    reminder = "reminder"
    alert = "alert"


# ── Misc constants ──────────────────────────────────────────────────

DATE_FORMAT = "%b %d, %Y"          # Oct 17, 2026
TIME_FORMAT = "%I:%M %p"           # 02:30 PM
DEFAULT_WORK_REASON = "Compensating intermediate logout"
RECENT_WORK_DAYS = 7
RECENT_WORK_LIMIT = 5
ADMIN_REPORT_DAYS = 30
