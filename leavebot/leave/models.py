"""Leave request ORM model."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leavebot.common.constants import LeaveStatus
from leavebot.database import Base
from leavebot.users.models import User


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.Index("ix_leave_requests_status", "status"),
        sa.Index("ix_leave_requests_user_date", "user_id", "leave_date"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        sa.String(64), sa.ForeignKey("users.id"), nullable=False
    )
    type: Mapped[str] = mapped_column(sa.String(20), nullable=False)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    task_escalation: Mapped[str] = mapped_column(sa.Text, nullable=False)
    # Calendar date the request applies to (start date for planned leave)
    leave_date: Mapped[date] = mapped_column(sa.Date, nullable=False)

    # Intermediate logout
    planned_duration: Mapped[Optional[int]] = mapped_column(sa.Integer)
    expected_return_time: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))

    # Planned leave
    start_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    end_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    leave_duration_days: Mapped[Optional[int]] = mapped_column(sa.Integer)

    # Early logout / late login
    standard_time: Mapped[Optional[time]] = mapped_column(sa.Time)
    actual_time: Mapped[Optional[time]] = mapped_column(sa.Time)
    shortfall_minutes: Mapped[Optional[int]] = mapped_column(sa.Integer)

    # Decision
    status: Mapped[str] = mapped_column(
        sa.String(20), nullable=False, default=LeaveStatus.pending.value,
        server_default=LeaveStatus.pending.value,
    )
    approved_by: Mapped[Optional[str]] = mapped_column(sa.String(64))
    approved_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    approval_notes: Mapped[Optional[str]] = mapped_column(sa.Text)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    user: Mapped[User] = relationship()

    @property
    def is_pending(self) -> bool:
        return self.status == LeaveStatus.pending.value
