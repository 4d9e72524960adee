"""APScheduler wiring for the reconciliation tick and the digests."""

from __future__ import annotations

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from leavebot.config import settings
from leavebot.reconciliation.service import ReconciliationService

logger = logging.getLogger(__name__)


def build_scheduler(session_factory=None) -> AsyncIOScheduler:
    """Create a scheduler with the tick, end-of-day and weekly jobs registered."""
    kwargs = {"session_factory": session_factory} if session_factory is not None else {}
    scheduler = AsyncIOScheduler(timezone=settings.TIMEZONE)

    # Overlapping ticks are skipped rather than queued
    scheduler.add_job(
        func=ReconciliationService.run_tick,
        trigger=IntervalTrigger(seconds=settings.RECONCILIATION_INTERVAL_SECONDS),
        kwargs=kwargs,
        id="reconciliation_tick",
        name="Reconcile active sessions",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    scheduler.add_job(
        func=ReconciliationService.send_end_of_day_summaries,
        trigger=CronTrigger(
            day_of_week="mon-fri",
            hour=settings.END_OF_DAY_SUMMARY_HOUR,
            minute=0,
            timezone=settings.TIMEZONE,
        ),
        kwargs=kwargs,
        id="end_of_day_summary",
        name="End-of-day summary",
        replace_existing=True,
    )

    scheduler.add_job(
        func=ReconciliationService.send_weekly_pending_reminders,
        trigger=CronTrigger(
            day_of_week=settings.WEEKLY_REMINDER_DAY,
            hour=settings.WEEKLY_REMINDER_HOUR,
            minute=0,
            timezone=settings.TIMEZONE,
        ),
        kwargs=kwargs,
        id="weekly_pending_reminder",
        name="Weekly pending-work reminder",
        replace_existing=True,
    )
    return scheduler


_scheduler: Optional[AsyncIOScheduler] = None


def start_scheduler() -> AsyncIOScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = build_scheduler()
        _scheduler.start()
        logger.info(
            "Scheduler started: tick every %ss, summary at %02d:00, weekly reminder %s %02d:00",
            settings.RECONCILIATION_INTERVAL_SECONDS,
            settings.END_OF_DAY_SUMMARY_HOUR,
            settings.WEEKLY_REMINDER_DAY,
            settings.WEEKLY_REMINDER_HOUR,
        )
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Scheduler stopped")
