"""Admin service — aggregate report across all users for a date range."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leavebot.admin.schemas import AdminReportOut, UserReportRow, WorkLogEntry
from leavebot.balance.models import DailySummary
from leavebot.common.constants import ADMIN_REPORT_DAYS
from leavebot.common.exceptions import ValidationException
from leavebot.common.timeutils import elapsed_minutes, local_today, utc_now
from leavebot.leave.schemas import LeaveRequestOut
from leavebot.leave.service import LeaveService
from leavebot.sessions.models import ExtraWorkSession, LeaveSession
from leavebot.users.service import UserService

logger = logging.getLogger(__name__)


class AdminService:
    """Read-only reporting for administrators."""

    @staticmethod
    async def report(
        db: AsyncSession,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        *,
        now: Optional[datetime] = None,
    ) -> AdminReportOut:
        """Per-user totals over [start_date, end_date], default the last 30 days.

        Open leave sessions count the minutes elapsed so far; only closed extra
        work counts. Users with no activity in the range are omitted.
        """
        now = now or utc_now()
        end_date = end_date or local_today(now)
        start_date = start_date or end_date - timedelta(days=ADMIN_REPORT_DAYS)
        if end_date < start_date:
            raise ValidationException({"end_date": ["End date cannot be before start date."]})

        rows: dict[str, UserReportRow] = {}

        def row(user_id: str) -> UserReportRow:
            if user_id not in rows:
                rows[user_id] = UserReportRow(user_id=user_id, name=user_id)
            return rows[user_id]

        leave = await db.execute(
            select(
                LeaveSession.user_id,
                LeaveSession.start_time,
                LeaveSession.end_time,
                LeaveSession.actual_duration,
            ).where(LeaveSession.date.between(start_date, end_date))
        )
        for user_id, start_time, end_time, actual in leave.all():
            entry = row(user_id)
            entry.total_leave_sessions += 1
            entry.total_leave_minutes += (
                (actual or 0) if end_time is not None else elapsed_minutes(start_time, now)
            )

        work = await db.execute(
            select(
                ExtraWorkSession.user_id,
                func.count(ExtraWorkSession.id),
                func.coalesce(func.sum(ExtraWorkSession.duration), 0),
            )
            .where(
                ExtraWorkSession.date.between(start_date, end_date),
                ExtraWorkSession.end_time.is_not(None),
            )
            .group_by(ExtraWorkSession.user_id)
        )
        for user_id, count, minutes in work.all():
            entry = row(user_id)
            entry.total_extra_work_sessions = int(count)
            entry.total_extra_work_minutes = int(minutes)

        pending = await db.execute(
            select(
                DailySummary.user_id,
                func.coalesce(func.sum(DailySummary.pending_extra_work_minutes), 0),
            )
            .where(DailySummary.date.between(start_date, end_date))
            .group_by(DailySummary.user_id)
        )
        for user_id, minutes in pending.all():
            if minutes:
                row(user_id).total_pending_minutes = int(minutes)

        names = await UserService.get_names(db, set(rows))
        for user_id, entry in rows.items():
            entry.name = names.get(user_id, user_id)

        work_log = await db.execute(
            select(ExtraWorkSession)
            .where(
                ExtraWorkSession.date.between(start_date, end_date),
                ExtraWorkSession.end_time.is_not(None),
                ExtraWorkSession.work_description.is_not(None),
            )
            .order_by(ExtraWorkSession.start_time.desc())
        )

        pending_requests = await LeaveService.list_pending(db)
        logger.info("Admin report generated for %s → %s (%s users)", start_date, end_date, len(rows))

        return AdminReportOut(
            start_date=start_date,
            end_date=end_date,
            users=sorted(rows.values(), key=lambda r: r.total_leave_minutes, reverse=True),
            work_log=[WorkLogEntry.model_validate(s) for s in work_log.scalars().all()],
            pending_requests=[LeaveRequestOut.model_validate(r) for r in pending_requests],
        )
