"""Admin report Pydantic v2 schemas."""

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict

from leavebot.leave.schemas import LeaveRequestOut


class UserReportRow(BaseModel):
    user_id: str
    name: str
    total_leave_sessions: int = 0
    total_leave_minutes: int = 0
    total_extra_work_sessions: int = 0
    total_extra_work_minutes: int = 0
    total_pending_minutes: int = 0


class WorkLogEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    date: dt.date
    duration: Optional[int] = None
    work_description: Optional[str] = None


class AdminReportOut(BaseModel):
    start_date: dt.date
    end_date: dt.date
    users: list[UserReportRow] = []
    work_log: list[WorkLogEntry] = []
    pending_requests: list[LeaveRequestOut] = []
