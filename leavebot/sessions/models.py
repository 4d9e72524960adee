"""Session ORM models: LeaveSession, ExtraWorkSession.

Both tables carry a partial unique index on ``user_id WHERE end_time IS NULL``
so the store itself refuses a second active session for the same user.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leavebot.common.constants import DEFAULT_WORK_REASON
from leavebot.database import Base
from leavebot.users.models import User

_ACTIVE = sa.text("end_time IS NULL")


class LeaveSession(Base):
    __tablename__ = "leave_sessions"
    __table_args__ = (
        sa.Index(
            "uq_leave_sessions_active_user",
            "user_id",
            unique=True,
            postgresql_where=_ACTIVE,
            sqlite_where=_ACTIVE,
        ),
        sa.Index("ix_leave_sessions_user_date", "user_id", "date"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        sa.String(64), sa.ForeignKey("users.id"), nullable=False
    )
    start_time: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    planned_duration: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    actual_duration: Mapped[Optional[int]] = mapped_column(sa.Integer)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    is_half_day: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.false()
    )

    # Reconciliation markers
    last_reminder_bucket: Mapped[Optional[int]] = mapped_column(sa.Integer)
    final_warning_sent: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.false()
    )
    auto_converted: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.false()
    )

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    user: Mapped[User] = relationship()

    @property
    def is_active(self) -> bool:
        return self.end_time is None


class ExtraWorkSession(Base):
    __tablename__ = "extra_work_sessions"
    __table_args__ = (
        sa.Index(
            "uq_extra_work_sessions_active_user",
            "user_id",
            unique=True,
            postgresql_where=_ACTIVE,
            sqlite_where=_ACTIVE,
        ),
        sa.Index("ix_extra_work_sessions_user_date", "user_id", "date"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        sa.String(64), sa.ForeignKey("users.id"), nullable=False
    )
    start_time: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    duration: Mapped[Optional[int]] = mapped_column(sa.Integer)
    date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    reason: Mapped[str] = mapped_column(
        sa.Text, nullable=False, default=DEFAULT_WORK_REASON
    )
    work_description: Mapped[Optional[str]] = mapped_column(sa.Text)

    # Reconciliation marker
    completion_notified: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.false()
    )

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    user: Mapped[User] = relationship()

    @property
    def is_active(self) -> bool:
        return self.end_time is None
