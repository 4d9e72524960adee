"""Balance Pydantic v2 schemas."""

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, ConfigDict


class DailySummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    date: dt.date
    total_leave_minutes: int = 0
    total_extra_work_minutes: int = 0
    shortfall_minutes: int = 0
    pending_extra_work_minutes: int = 0


class PendingWorkOut(BaseModel):
    user_id: str
    name: str
    pending_minutes: int
    days: int
