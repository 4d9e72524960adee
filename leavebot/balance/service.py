"""Balance aggregator — recompute-from-source daily summaries.

The summary for (user, day) is always rebuilt from the session tables and the
day's approved shortfall requests, then upserted, so calling it any number of
times without an intervening change yields the same row.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from leavebot.balance.models import DailySummary
from leavebot.common.constants import SHORTFALL_TYPES, LeaveStatus
from leavebot.common.timeutils import elapsed_minutes, local_today, utc_now
from leavebot.config import settings
from leavebot.leave.models import LeaveRequest
from leavebot.sessions.models import ExtraWorkSession, LeaveSession
from leavebot.users.models import User

logger = logging.getLogger(__name__)


def compute_pending(
    total_leave: int,
    total_extra_work: int,
    shortfall: int = 0,
    cap: Optional[int] = None,
) -> int:
    """``max(0, min(leave + shortfall, cap) - extra_work)``."""
    cap = settings.compensation_cap_minutes if cap is None else cap
    return max(0, min(total_leave + shortfall, cap) - total_extra_work)


class BalanceService:
    """Async daily-summary operations."""

    # ─────────────────────────────────────────────────────────────────
    # Aggregation
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def recompute_daily_summary(
        db: AsyncSession,
        user_id: str,
        day: date,
        *,
        now: Optional[datetime] = None,
    ) -> DailySummary:
        """Rebuild and upsert the summary row for ``user_id`` on ``day``.

        Closed leave counts its actual duration; a still-open leave session
        counts the minutes elapsed up to ``now``. Only closed extra work counts.
        """
        now = now or utc_now()

        leave_rows = await db.execute(
            select(LeaveSession.start_time, LeaveSession.actual_duration, LeaveSession.end_time)
            .where(LeaveSession.user_id == user_id, LeaveSession.date == day)
        )
        total_leave = 0
        for start_time, actual, end_time in leave_rows.all():
            if end_time is None:
                total_leave += max(0, elapsed_minutes(start_time, now))
            else:
                total_leave += actual or 0

        total_extra = (
            await db.execute(
                select(func.coalesce(func.sum(ExtraWorkSession.duration), 0)).where(
                    ExtraWorkSession.user_id == user_id,
                    ExtraWorkSession.date == day,
                    ExtraWorkSession.end_time.is_not(None),
                )
            )
        ).scalar_one()

        shortfall = (
            await db.execute(
                select(func.coalesce(func.sum(LeaveRequest.shortfall_minutes), 0)).where(
                    LeaveRequest.user_id == user_id,
                    LeaveRequest.leave_date == day,
                    LeaveRequest.status == LeaveStatus.approved.value,
                    LeaveRequest.type.in_([t.value for t in SHORTFALL_TYPES]),
                )
            )
        ).scalar_one()

        pending = compute_pending(total_leave, total_extra, shortfall)
        values = {
            "total_leave_minutes": total_leave,
            "total_extra_work_minutes": total_extra,
            "shortfall_minutes": shortfall,
            "pending_extra_work_minutes": pending,
            "updated_at": now,
        }

        insert = pg_insert if db.get_bind().dialect.name == "postgresql" else sqlite_insert
        stmt = insert(DailySummary).values(user_id=user_id, date=day, **values)
        stmt = stmt.on_conflict_do_update(index_elements=["user_id", "date"], set_=values)
        await db.execute(stmt)

        summary = (
            await db.execute(
                select(DailySummary)
                .where(DailySummary.user_id == user_id, DailySummary.date == day)
                .execution_options(populate_existing=True)
            )
        ).scalar_one()
        logger.debug(
            "Summary %s/%s: leave=%s extra=%s shortfall=%s pending=%s",
            user_id, day, total_leave, total_extra, shortfall, pending,
        )
        return summary

    # ─────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_summary(db: AsyncSession, user_id: str, day: date) -> Optional[DailySummary]:
        result = await db.execute(
            select(DailySummary).where(DailySummary.user_id == user_id, DailySummary.date == day)
        )
        return result.scalars().first()

    @staticmethod
    async def get_pending_minutes(db: AsyncSession, user_id: str, day: date) -> int:
        summary = await BalanceService.get_summary(db, user_id, day)
        return summary.pending_extra_work_minutes if summary else 0

    @staticmethod
    async def summaries_for_day(db: AsyncSession, day: date) -> list[DailySummary]:
        """Summaries with any leave or pending minutes on ``day``."""
        result = await db.execute(
            select(DailySummary)
            .where(
                DailySummary.date == day,
                or_(
                    DailySummary.total_leave_minutes > 0,
                    DailySummary.pending_extra_work_minutes > 0,
                ),
            )
            .order_by(DailySummary.user_id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def users_with_pending_work(
        db: AsyncSession,
        days: int,
        *,
        now: Optional[datetime] = None,
    ) -> list[dict]:
        """Users whose summed pending minutes over the last ``days`` days is positive."""
        since = local_today(now) - timedelta(days=days)
        result = await db.execute(
            select(
                DailySummary.user_id,
                User.name,
                func.sum(DailySummary.pending_extra_work_minutes).label("pending"),
                func.count(DailySummary.id).label("days"),
            )
            .join(User, User.id == DailySummary.user_id)
            .where(DailySummary.date >= since, DailySummary.pending_extra_work_minutes > 0)
            .group_by(DailySummary.user_id, User.name)
            .order_by(func.sum(DailySummary.pending_extra_work_minutes).desc())
        )
        return [
            {
                "user_id": row.user_id,
                "name": row.name,
                "pending_minutes": int(row.pending),
                "days": int(row.days),
            }
            for row in result.all()
        ]

    @staticmethod
    async def review(
        db: AsyncSession,
        user_id: str,
        *,
        now: Optional[datetime] = None,
    ) -> dict:
        """Read-only status: today's summary, open sessions, recent work and requests."""
        from leavebot.leave.service import LeaveService
        from leavebot.sessions.service import SessionService

        now = now or utc_now()
        today = local_today(now)
        return {
            "user_id": user_id,
            "date": today,
            "summary": await BalanceService.get_summary(db, user_id, today),
            "active_leave": await SessionService.get_active_leave(db, user_id),
            "active_work": await SessionService.get_active_work(db, user_id),
            "recent_work": await SessionService.recent_work_sessions(db, user_id, now=now),
            "recent_requests": await LeaveService.user_requests(db, user_id),
        }
