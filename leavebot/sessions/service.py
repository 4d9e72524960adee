"""Session state machine — leave and extra-work session lifecycles.

Per user and per kind a session moves NONE → ACTIVE → CLOSED. The
one-active-session rule is checked up front for a friendly error and enforced
by a partial unique index, so a racing second insert fails in the store and is
reported as ``ConflictError``. Closing is a conditional UPDATE on
``end_time IS NULL``: two concurrent closers cannot both succeed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leavebot.balance.models import DailySummary
from leavebot.balance.service import BalanceService
from leavebot.common.constants import DEFAULT_WORK_REASON, RECENT_WORK_DAYS, RECENT_WORK_LIMIT
from leavebot.common.exceptions import ConflictError, NotFoundException, ValidationException
from leavebot.common.timeutils import elapsed_minutes, local_date_of, utc_now
from leavebot.config import settings
from leavebot.notifications.service import notify_leave_returned, notify_leave_started
from leavebot.sessions.models import ExtraWorkSession, LeaveSession
from leavebot.users.service import UserService

logger = logging.getLogger(__name__)


class SessionService:
    """Async operations on leave and extra-work sessions."""

    # ─────────────────────────────────────────────────────────────────
    # Lookups
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_active_leave(db: AsyncSession, user_id: str) -> Optional[LeaveSession]:
        result = await db.execute(
            select(LeaveSession)
            .where(LeaveSession.user_id == user_id, LeaveSession.end_time.is_(None))
            .order_by(LeaveSession.start_time.desc())
            .limit(1)
        )
        return result.scalars().first()

    @staticmethod
    async def get_active_work(db: AsyncSession, user_id: str) -> Optional[ExtraWorkSession]:
        result = await db.execute(
            select(ExtraWorkSession)
            .where(ExtraWorkSession.user_id == user_id, ExtraWorkSession.end_time.is_(None))
            .order_by(ExtraWorkSession.start_time.desc())
            .limit(1)
        )
        return result.scalars().first()

    @staticmethod
    async def list_active_leave(db: AsyncSession) -> list[LeaveSession]:
        result = await db.execute(
            select(LeaveSession)
            .where(LeaveSession.end_time.is_(None))
            .order_by(LeaveSession.start_time)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_active_work(db: AsyncSession) -> list[ExtraWorkSession]:
        result = await db.execute(
            select(ExtraWorkSession)
            .where(ExtraWorkSession.end_time.is_(None))
            .order_by(ExtraWorkSession.start_time)
        )
        return list(result.scalars().all())

    @staticmethod
    async def recent_work_sessions(
        db: AsyncSession,
        user_id: str,
        *,
        now: Optional[datetime] = None,
        days: int = RECENT_WORK_DAYS,
        limit: int = RECENT_WORK_LIMIT,
    ) -> list[ExtraWorkSession]:
        """Closed extra-work sessions of the last ``days`` days, newest first."""
        cutoff = local_date_of(now or utc_now()) - timedelta(days=days)
        result = await db.execute(
            select(ExtraWorkSession)
            .where(
                ExtraWorkSession.user_id == user_id,
                ExtraWorkSession.date >= cutoff,
                ExtraWorkSession.end_time.is_not(None),
            )
            .order_by(ExtraWorkSession.start_time.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # ─────────────────────────────────────────────────────────────────
    # Leave sessions
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def start_leave(
        db: AsyncSession,
        user_id: str,
        planned_minutes: int,
        reason: str,
        *,
        now: Optional[datetime] = None,
    ) -> LeaveSession:
        """Open a leave session. Raises ConflictError if one is already active.

        On a lost insert race the session's transaction is rolled back before
        the ConflictError is raised.
        """
        if planned_minutes <= 0:
            raise ValidationException({"duration": ["Leave duration must be greater than zero."]})

        if await SessionService.get_active_leave(db, user_id) is not None:
            raise ConflictError(
                "You already have an active leave session. Return first.",
                errors={"user_id": [user_id]},
            )

        now = now or utc_now()
        session = LeaveSession(
            user_id=user_id,
            start_time=now,
            planned_duration=planned_minutes,
            reason=reason,
            date=local_date_of(now),
        )
        db.add(session)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            logger.warning("Concurrent leave start rejected for user %s", user_id)
            raise ConflictError(
                "You already have an active leave session. Return first.",
                errors={"user_id": [user_id]},
            )

        logger.info(
            "Leave session %s started for %s (%s min): %s",
            session.id, user_id, planned_minutes, reason,
        )
        return session

    @staticmethod
    async def extend_leave(
        db: AsyncSession,
        session_id: int,
        additional_minutes: int,
    ) -> LeaveSession:
        """Add minutes to an active session's planned duration. No upper bound here."""
        if additional_minutes <= 0:
            raise ValidationException({"duration": ["Extension must be greater than zero."]})

        result = await db.execute(
            update(LeaveSession)
            .where(LeaveSession.id == session_id, LeaveSession.end_time.is_(None))
            .values(planned_duration=LeaveSession.planned_duration + additional_minutes)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFoundException("LeaveSession", session_id, "No active leave session with that id.")

        session = await db.get(LeaveSession, session_id, populate_existing=True)
        logger.info(
            "Leave session %s extended by %s min (planned now %s)",
            session_id, additional_minutes, session.planned_duration,
        )
        return session

    @staticmethod
    async def end_leave(
        db: AsyncSession,
        user_id: str,
        *,
        now: Optional[datetime] = None,
        half_day: bool = False,
    ) -> LeaveSession:
        """Close the user's active leave session and record its actual duration.

        Shared by ``/return`` and the scheduler's auto-conversion; the latter
        passes ``half_day=True``.
        """
        session = await SessionService.get_active_leave(db, user_id)
        if session is None:
            raise NotFoundException("LeaveSession", user_id, "You don't have an active leave session.")

        now = now or utc_now()
        actual = elapsed_minutes(session.start_time, now)
        values: dict = {"end_time": now, "actual_duration": actual}
        if half_day:
            values["is_half_day"] = True

        result = await db.execute(
            update(LeaveSession)
            .where(LeaveSession.id == session.id, LeaveSession.end_time.is_(None))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFoundException("LeaveSession", user_id, "You don't have an active leave session.")

        session = await db.get(LeaveSession, session.id, populate_existing=True)
        logger.info(
            "Leave session %s closed for %s: planned=%s actual=%s",
            session.id, user_id, session.planned_duration, actual,
        )
        return session

    # ─────────────────────────────────────────────────────────────────
    # Extra-work sessions
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def start_work(
        db: AsyncSession,
        user_id: str,
        reason: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> ExtraWorkSession:
        """Open an extra-work session. Raises ConflictError if one is already active."""
        if await SessionService.get_active_work(db, user_id) is not None:
            raise ConflictError(
                "You already have an active extra work session. End it first.",
                errors={"user_id": [user_id]},
            )

        now = now or utc_now()
        session = ExtraWorkSession(
            user_id=user_id,
            start_time=now,
            reason=(reason or "").strip() or DEFAULT_WORK_REASON,
            date=local_date_of(now),
        )
        db.add(session)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            logger.warning("Concurrent extra work start rejected for user %s", user_id)
            raise ConflictError(
                "You already have an active extra work session. End it first.",
                errors={"user_id": [user_id]},
            )

        logger.info("Extra work session %s started for %s", session.id, user_id)
        return session

    @staticmethod
    async def end_work(
        db: AsyncSession,
        user_id: str,
        description: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> ExtraWorkSession:
        """Close the user's active extra-work session."""
        session = await SessionService.get_active_work(db, user_id)
        if session is None:
            raise NotFoundException(
                "ExtraWorkSession", user_id, "You don't have an active extra work session.",
            )

        now = now or utc_now()
        duration = elapsed_minutes(session.start_time, now)
        result = await db.execute(
            update(ExtraWorkSession)
            .where(ExtraWorkSession.id == session.id, ExtraWorkSession.end_time.is_(None))
            .values(end_time=now, duration=duration, work_description=description)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFoundException(
                "ExtraWorkSession", user_id, "You don't have an active extra work session.",
            )

        session = await db.get(ExtraWorkSession, session.id, populate_existing=True)
        logger.info("Extra work session %s closed for %s: %s min", session.id, user_id, duration)
        return session

    # ─────────────────────────────────────────────────────────────────
    # Commands (state transition + recompute + notices)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def log_out(
        db: AsyncSession,
        user_id: str,
        planned_minutes: int,
        reason: str,
        *,
        now: Optional[datetime] = None,
    ) -> LeaveSession:
        """Start an unplanned leave and announce it in the transparency channel."""
        session = await SessionService.start_leave(db, user_id, planned_minutes, reason, now=now)
        user = await UserService.get_user(db, user_id)
        await notify_leave_started(db, session, user.name)
        return session

    @staticmethod
    async def log_return(
        db: AsyncSession,
        user_id: str,
        *,
        now: Optional[datetime] = None,
    ) -> tuple[LeaveSession, DailySummary, bool]:
        """Close the active leave, refresh the day's summary and post the return notice.

        The flag is True when the day's total leave now exceeds the
        compensation cap, i.e. the absence counts as a half day.
        """
        now = now or utc_now()
        session = await SessionService.end_leave(db, user_id, now=now)
        summary = await BalanceService.recompute_daily_summary(db, user_id, session.date, now=now)
        half_day = summary.total_leave_minutes > settings.compensation_cap_minutes

        user = await UserService.get_user(db, user_id)
        await notify_leave_returned(db, session, user.name, summary, half_day)
        return session, summary, half_day

    @staticmethod
    async def finish_work(
        db: AsyncSession,
        user_id: str,
        description: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> tuple[ExtraWorkSession, DailySummary]:
        """Close the active extra-work session and refresh the day's summary."""
        now = now or utc_now()
        session = await SessionService.end_work(db, user_id, description, now=now)
        summary = await BalanceService.recompute_daily_summary(db, user_id, session.date, now=now)
        return session, summary
