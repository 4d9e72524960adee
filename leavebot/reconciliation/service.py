"""Reconciliation — time-driven transitions re-derived from stored state.

One pass per tick evaluates every active session against all threshold rules.
Nothing is kept in memory between ticks: reminder progress lives in marker
columns on the session rows, so a restart neither loses nor repeats a notice,
and a session closed through any path simply stops matching.

Each row is handled in its own database session and transaction; a failure on
one row is logged and the pass continues with the next.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leavebot.balance.service import BalanceService
from leavebot.common.audit import create_audit_entry
from leavebot.common.exceptions import NotFoundException, StoreError
from leavebot.common.timeutils import elapsed_minutes, local_today, utc_now
from leavebot.config import settings
from leavebot.database import async_session_factory
from leavebot.leave.service import LeaveService
from leavebot.notifications.outbox import commit_and_deliver, defer_delivery
from leavebot.notifications.service import (
    notify_auto_converted,
    notify_daily_summary,
    notify_exceeded_reminder,
    notify_final_warning,
    notify_pending_work,
    notify_startup_recovery,
    notify_work_complete,
)
from leavebot.sessions.models import ExtraWorkSession, LeaveSession
from leavebot.sessions.service import SessionService

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class LeaveAction:
    AUTO_CONVERTED = "auto_converted"
    FINAL_WARNING = "final_warning"
    REMINDER = "reminder"


class ReconciliationService:
    """Periodic sweeps over active sessions plus scheduled digests."""

    # ─────────────────────────────────────────────────────────────────
    # Per-row rules
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def reconcile_leave(
        db: AsyncSession,
        session_id: int,
        *,
        now: Optional[datetime] = None,
    ) -> Optional[str]:
        """Apply the first matching rule to one leave session.

        Rules in order: auto-convert past the cap, one final warning shortly
        before the cap, then one reminder per exceeded-time bucket.
        """
        now = now or utc_now()
        session = await db.get(LeaveSession, session_id, populate_existing=True)
        if session is None or not session.is_active:
            return None

        cap = settings.compensation_cap_minutes
        elapsed = elapsed_minutes(session.start_time, now)

        if elapsed > cap:
            return await ReconciliationService._auto_convert(db, session, now)

        if elapsed >= cap - settings.FINAL_WARNING_LEAD_MINUTES:
            if session.final_warning_sent:
                return None
            await notify_final_warning(db, session, cap - elapsed)
            session.final_warning_sent = True
            await db.flush()
            logger.info("Final warning sent for leave session %s (%s min)", session.id, elapsed)
            return LeaveAction.FINAL_WARNING

        if elapsed > session.planned_duration:
            bucket = (elapsed - session.planned_duration) // settings.REMINDER_INTERVAL_MINUTES
            if session.last_reminder_bucket is not None and bucket <= session.last_reminder_bucket:
                return None
            await notify_exceeded_reminder(db, session, elapsed)
            session.last_reminder_bucket = bucket
            await db.flush()
            logger.info("Reminder %s sent for leave session %s", bucket, session.id)
            return LeaveAction.REMINDER

        return None

    @staticmethod
    async def _auto_convert(db: AsyncSession, session: LeaveSession, now: datetime) -> Optional[str]:
        try:
            closed = await SessionService.end_leave(db, session.user_id, now=now, half_day=True)
        except NotFoundException:
            # Closed by the user between the read and the update.
            return None

        await db.execute(
            update(LeaveSession)
            .where(LeaveSession.id == closed.id)
            .values(auto_converted=True)
            .execution_options(synchronize_session=False)
        )
        closed = await db.get(LeaveSession, closed.id, populate_existing=True)

        await create_audit_entry(
            db,
            action="auto_convert",
            entity_type="leave_session",
            entity_id=closed.id,
            actor_id=SYSTEM_ACTOR,
            old_values={"end_time": None},
            new_values={"actual_duration": closed.actual_duration, "is_half_day": True},
        )
        await BalanceService.recompute_daily_summary(db, closed.user_id, closed.date, now=now)
        await notify_auto_converted(db, closed)
        logger.info(
            "Leave session %s auto-converted to half day after %s min",
            closed.id, closed.actual_duration,
        )
        return LeaveAction.AUTO_CONVERTED

    @staticmethod
    async def reconcile_work(
        db: AsyncSession,
        session_id: int,
        *,
        now: Optional[datetime] = None,
    ) -> bool:
        """Notify once when an active extra-work session has covered today's pending.

        Never closes the session; that needs the user's work description.
        """
        now = now or utc_now()
        session = await db.get(ExtraWorkSession, session_id, populate_existing=True)
        if session is None or not session.is_active or session.completion_notified:
            return False

        pending = await BalanceService.get_pending_minutes(db, session.user_id, local_today(now))
        if pending <= 0 or elapsed_minutes(session.start_time, now) < pending:
            return False

        await notify_work_complete(db, session, pending)
        session.completion_notified = True
        await db.flush()
        logger.info("Extra work session %s eligible for completion", session.id)
        return True

    # ─────────────────────────────────────────────────────────────────
    # Sweeps
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def run_tick(
        session_factory: async_sessionmaker = async_session_factory,
        *,
        now: Optional[datetime] = None,
    ) -> dict[str, int]:
        """Single reconciliation pass over every active session."""
        now = now or utc_now()
        counts = {
            LeaveAction.AUTO_CONVERTED: 0,
            LeaveAction.FINAL_WARNING: 0,
            LeaveAction.REMINDER: 0,
            "work_complete": 0,
            "errors": 0,
        }

        try:
            async with session_factory() as db:
                leave_ids = [s.id for s in await SessionService.list_active_leave(db)]
                work_ids = [s.id for s in await SessionService.list_active_work(db)]
        except SQLAlchemyError as exc:
            logger.error("Reconciliation tick skipped: %s", StoreError(str(exc)).detail)
            counts["errors"] += 1
            return counts

        for session_id in leave_ids:
            try:
                async with session_factory() as db:
                    defer_delivery(db)
                    action = await ReconciliationService.reconcile_leave(db, session_id, now=now)
                    await commit_and_deliver(db)
                if action:
                    counts[action] += 1
            except Exception:
                counts["errors"] += 1
                logger.exception("Reconciliation failed for leave session %s", session_id)

        for session_id in work_ids:
            try:
                async with session_factory() as db:
                    defer_delivery(db)
                    notified = await ReconciliationService.reconcile_work(db, session_id, now=now)
                    await commit_and_deliver(db)
                if notified:
                    counts["work_complete"] += 1
            except Exception:
                counts["errors"] += 1
                logger.exception("Reconciliation failed for extra work session %s", session_id)

        if any(counts.values()):
            logger.info("Reconciliation tick: %s", counts)
        return counts

    @staticmethod
    async def startup_recovery(
        session_factory: async_sessionmaker = async_session_factory,
    ) -> dict[str, int]:
        """Report in-flight state that survived a restart. Mutates nothing but the notice log."""
        async with session_factory() as db:
            defer_delivery(db)
            pending = await LeaveService.list_pending(db)
            active_leave = await SessionService.list_active_leave(db)
            active_work = await SessionService.list_active_work(db)

            report = {
                "pending_requests": len(pending),
                "active_leave": len(active_leave),
                "active_work": len(active_work),
            }
            logger.info("Startup recovery: %s", report)
            for request in pending:
                logger.info("Pending request %s (%s) from %s", request.id, request.type, request.user_id)
            for session in active_leave:
                logger.info("Active leave session %s for %s", session.id, session.user_id)

            if any(report.values()):
                await notify_startup_recovery(
                    db, report["pending_requests"], report["active_leave"], report["active_work"],
                )
                await commit_and_deliver(db)
        return report

    @staticmethod
    async def send_end_of_day_summaries(
        session_factory: async_sessionmaker = async_session_factory,
        *,
        now: Optional[datetime] = None,
    ) -> int:
        """DM everyone whose summary for today shows leave or pending minutes."""
        today = local_today(now)
        async with session_factory() as db:
            summaries = await BalanceService.summaries_for_day(db, today)
            targets = [(s.user_id, s.date) for s in summaries]

        sent = 0
        for user_id, day in targets:
            try:
                async with session_factory() as db:
                    defer_delivery(db)
                    summary = await BalanceService.recompute_daily_summary(db, user_id, day, now=now)
                    await notify_daily_summary(db, summary)
                    await commit_and_deliver(db)
                sent += 1
            except Exception:
                logger.exception("End-of-day summary failed for %s", user_id)
        logger.info("End-of-day summaries sent: %s", sent)
        return sent

    @staticmethod
    async def send_weekly_pending_reminders(
        session_factory: async_sessionmaker = async_session_factory,
        *,
        now: Optional[datetime] = None,
    ) -> int:
        """Remind users with pending minutes inside the look-back window."""
        days = settings.EXTRA_WORK_DEADLINE_DAYS
        async with session_factory() as db:
            users = await BalanceService.users_with_pending_work(db, days, now=now)

        sent = 0
        for entry in users:
            try:
                async with session_factory() as db:
                    defer_delivery(db)
                    await notify_pending_work(db, entry["user_id"], entry["pending_minutes"], days)
                    await commit_and_deliver(db)
                sent += 1
            except Exception:
                logger.exception("Weekly reminder failed for %s", entry["user_id"])
        logger.info("Weekly pending reminders sent: %s", sent)
        return sent
