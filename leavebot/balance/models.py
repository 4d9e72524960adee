"""DailySummary ORM model — cached per-user, per-day aggregate."""

from __future__ import annotations

from datetime import date, datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from leavebot.database import Base


class DailySummary(Base):
    __tablename__ = "daily_summaries"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "date", name="uq_daily_summaries_user_date"),
        sa.Index("ix_daily_summaries_date", "date"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        sa.String(64), sa.ForeignKey("users.id"), nullable=False
    )
    date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    total_leave_minutes: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    total_extra_work_minutes: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    # Approved early-logout / late-login minutes for the day
    shortfall_minutes: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    pending_extra_work_minutes: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
