"""Session Pydantic v2 schemas — request / response validation."""

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from leavebot.balance.schemas import DailySummaryOut
from leavebot.common.timeutils import parse_duration
from leavebot.leave.schemas import LeaveRequestOut


def _duration(value: str) -> str:
    if parse_duration(value) <= 0:
        raise ValueError('Invalid duration. Use formats like "30m", "1h", "1.5h" or "1h30m".')
    return value


# ── Requests ────────────────────────────────────────────────────────


class LeaveStartRequest(BaseModel):
    duration: str = Field(..., min_length=1, max_length=20, examples=["1h30m"])
    reason: str = Field(..., min_length=1, max_length=500)

    @field_validator("duration")
    @classmethod
    def check_duration(cls, v: str) -> str:
        return _duration(v)

    @property
    def planned_minutes(self) -> int:
        return parse_duration(self.duration)


class LeaveExtendRequest(BaseModel):
    additional: str = Field(..., min_length=1, max_length=20, examples=["30m"])

    @field_validator("additional")
    @classmethod
    def check_additional(cls, v: str) -> str:
        return _duration(v)

    @property
    def additional_minutes(self) -> int:
        return parse_duration(self.additional)


class WorkStartRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class WorkEndRequest(BaseModel):
    description: str = Field(..., min_length=1, max_length=2000)


# ── Responses ───────────────────────────────────────────────────────


class LeaveSessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    start_time: dt.datetime
    end_time: Optional[dt.datetime] = None
    planned_duration: int
    actual_duration: Optional[int] = None
    reason: str
    date: dt.date
    is_half_day: bool = False
    auto_converted: bool = False


class ExtraWorkSessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    start_time: dt.datetime
    end_time: Optional[dt.datetime] = None
    duration: Optional[int] = None
    reason: str
    work_description: Optional[str] = None
    date: dt.date


class LeaveStartOut(BaseModel):
    session: LeaveSessionOut
    expected_return: dt.datetime
    exceeds_cap: bool = False
    half_day_form_url: Optional[str] = None


class LeaveReturnOut(BaseModel):
    session: LeaveSessionOut
    summary: DailySummaryOut
    half_day: bool = False
    half_day_form_url: Optional[str] = None


class WorkStartOut(BaseModel):
    session: ExtraWorkSessionOut
    pending_minutes: int = 0


class WorkEndOut(BaseModel):
    session: ExtraWorkSessionOut
    summary: DailySummaryOut


class ReviewOut(BaseModel):
    """Read-only status for the calling user."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    date: dt.date
    summary: Optional[DailySummaryOut] = None
    active_leave: Optional[LeaveSessionOut] = None
    active_work: Optional[ExtraWorkSessionOut] = None
    recent_work: list[ExtraWorkSessionOut] = []
    recent_requests: list[LeaveRequestOut] = []
