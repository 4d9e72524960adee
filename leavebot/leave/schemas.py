"""Leave request Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
"""

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from leavebot.common.constants import Decision
from leavebot.common.timeutils import parse_duration, parse_time_of_day


def _time_of_day(value):
    if value is None or isinstance(value, dt.time):
        return value
    parsed = parse_time_of_day(str(value))
    if parsed is None:
        raise ValueError('Invalid time. Use formats like "17:30" or "5:30 PM".')
    return parsed


class _RequestBase(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)
    handover: str = Field(..., min_length=1, max_length=2000)


# ═════════════════════════════════════════════════════════════════════
# Submissions
# ═════════════════════════════════════════════════════════════════════


class IntermediateLeaveCreate(_RequestBase):
    duration: str = Field(..., min_length=1, max_length=20, examples=["1h"])

    @field_validator("duration")
    @classmethod
    def check_duration(cls, v: str) -> str:
        if parse_duration(v) <= 0:
            raise ValueError('Invalid duration. Use formats like "30m", "1h" or "1h30m".')
        return v

    @property
    def planned_minutes(self) -> int:
        return parse_duration(self.duration)


class PlannedLeaveCreate(_RequestBase):
    start_date: dt.date
    end_date: dt.date

    @model_validator(mode="after")
    def check_dates(self) -> "PlannedLeaveCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class ShortfallCreate(_RequestBase):
    """Early logout or late login; ``standard_time`` defaults from settings."""

    actual_time: dt.time
    standard_time: Optional[dt.time] = None
    date: Optional[dt.date] = None

    @field_validator("actual_time", "standard_time", mode="before")
    @classmethod
    def parse_times(cls, v):
        return _time_of_day(v)


class DecisionRequest(BaseModel):
    decision: Decision
    notes: Optional[str] = Field(None, max_length=1000)


# ═════════════════════════════════════════════════════════════════════
# Responses
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    type: str
    reason: str
    task_escalation: str
    leave_date: dt.date
    planned_duration: Optional[int] = None
    expected_return_time: Optional[dt.datetime] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    leave_duration_days: Optional[int] = None
    standard_time: Optional[dt.time] = None
    actual_time: Optional[dt.time] = None
    shortfall_minutes: Optional[int] = None
    status: str
    approved_by: Optional[str] = None
    approved_at: Optional[dt.datetime] = None
    approval_notes: Optional[str] = None
    created_at: Optional[dt.datetime] = None
