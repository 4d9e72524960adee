"""Notification service — delivery log plus cross-module helper dispatchers."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leavebot.common.constants import LeaveRequestType, LeaveStatus, NotificationType
from leavebot.common.timeutils import (
    calculate_return_time,
    format_date,
    format_duration,
    format_time,
)
from leavebot.config import settings
from leavebot.notifications import outbox
from leavebot.notifications.models import Notification
from leavebot.notifications.sender import Sender, get_sender


# ── Core service ────────────────────────────────────────────────────


class NotificationService:
    """Async notification operations."""

    @staticmethod
    async def send(
        db: AsyncSession,
        *,
        recipient: str,
        type: NotificationType = NotificationType.info,
        title: str,
        message: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        sender: Optional[Sender] = None,
    ) -> Notification:
        """Record a notification and attempt delivery once.

        Delivery is bounded by ``NOTIFY_TIMEOUT_SECONDS``; any failure is logged
        and stored on the row, never raised. On a session armed with
        ``outbox.defer_delivery`` the message waits for ``commit_and_deliver``.
        """
        notification = Notification(
            recipient=recipient,
            type=type.value,
            title=title,
            message=message,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        db.add(notification)

        sender = sender or get_sender()
        if outbox.is_deferred(db):
            outbox.enqueue(db, notification, sender)
        else:
            await outbox.deliver(notification, sender)

        await db.flush()
        return notification

    @staticmethod
    async def get_for_recipient(
        db: AsyncSession,
        recipient: str,
        limit: int = 20,
    ) -> list[Notification]:
        """Newest notifications sent to a user or channel."""
        result = await db.execute(
            select(Notification)
            .where(Notification.recipient == recipient)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


# ── Cross-module helper dispatchers ─────────────────────────────────
# Imported by the sessions, leave and reconciliation services. They take
# ORM objects directly.


async def notify_leave_started(db: AsyncSession, session, user_name: str) -> Notification:
    """Post an unplanned-leave notice to the transparency channel."""
    expected = calculate_return_time(session.planned_duration, session.start_time)
    return await NotificationService.send(
        db,
        recipient=settings.TRANSPARENCY_CHANNEL,
        title="Intermediate Logout",
        message=(
            f"{user_name} stepped out for {format_duration(session.planned_duration)}. "
            f"Reason: {session.reason}. Expected back by {expected.strftime('%I:%M %p')}."
        ),
        entity_type="leave_session",
        entity_id=session.id,
    )


async def notify_leave_returned(
    db: AsyncSession,
    session,
    user_name: str,
    summary,
    half_day: bool,
) -> Notification:
    """Post a return notice; mentions the half-day rule when the cap was crossed."""
    message = (
        f"{user_name} is back after {format_duration(session.actual_duration)} "
        f"(planned {format_duration(session.planned_duration)}). "
        f"Pending extra work today: {format_duration(summary.pending_extra_work_minutes)}."
    )
    if half_day:
        message += " Total leave today exceeds the compensation cap and counts as a half day."
        if settings.HALF_DAY_FORM_URL:
            message += f" Please apply via {settings.HALF_DAY_FORM_URL}"
    return await NotificationService.send(
        db,
        recipient=settings.TRANSPARENCY_CHANNEL,
        title="Returned From Leave",
        message=message,
        entity_type="leave_session",
        entity_id=session.id,
    )


async def notify_leave_request(db: AsyncSession, leave_request, user_name: str) -> Notification:
    """Notify approvers that a new leave request needs review."""
    return await NotificationService.send(
        db,
        recipient=settings.APPROVAL_CHANNEL,
        type=NotificationType.action_required,
        title="New Leave Request",
        message=(
            f"Request #{leave_request.id} from {user_name}: {describe_request(leave_request)}. "
            f"Reason: {leave_request.reason}. Handover: {leave_request.task_escalation}"
        ),
        entity_type="leave_request",
        entity_id=leave_request.id,
    )


async def notify_leave_decided(db: AsyncSession, leave_request, approver_name: str) -> None:
    """DM the requester and post the outcome to the approval channel."""
    approved = leave_request.status == LeaveStatus.approved.value
    verb = "approved" if approved else "denied"
    message = f"Your request #{leave_request.id} ({describe_request(leave_request)}) was {verb} by {approver_name}."
    if leave_request.approval_notes:
        message += f" Notes: {leave_request.approval_notes}"

    await NotificationService.send(
        db,
        recipient=leave_request.user_id,
        type=NotificationType.approval if approved else NotificationType.alert,
        title=f"Leave Request {verb.capitalize()}",
        message=message,
        entity_type="leave_request",
        entity_id=leave_request.id,
    )
    await NotificationService.send(
        db,
        recipient=settings.APPROVAL_CHANNEL,
        title=f"Leave Request {verb.capitalize()}",
        message=f"Request #{leave_request.id} for <@{leave_request.user_id}> was {verb} by {approver_name}.",
        entity_type="leave_request",
        entity_id=leave_request.id,
    )


async def notify_exceeded_reminder(db: AsyncSession, session, elapsed: int) -> Notification:
    over = elapsed - session.planned_duration
    return await NotificationService.send(
        db,
        recipient=session.user_id,
        type=NotificationType.reminder,
        title="Leave Time Exceeded",
        message=(
            f"You planned {format_duration(session.planned_duration)} but have been away "
            f"{format_duration(elapsed)} ({format_duration(over)} over). "
            f"Use /return when you are back or extend your leave."
        ),
        entity_type="leave_session",
        entity_id=session.id,
    )


async def notify_final_warning(db: AsyncSession, session, minutes_left: int) -> Notification:
    return await NotificationService.send(
        db,
        recipient=session.user_id,
        type=NotificationType.alert,
        title="Final Warning",
        message=(
            f"In about {format_duration(max(minutes_left, 1))} your leave will exceed "
            f"{format_duration(settings.compensation_cap_minutes)} and be converted to a half day."
        ),
        entity_type="leave_session",
        entity_id=session.id,
    )


async def notify_auto_converted(db: AsyncSession, session) -> None:
    """Tell the user and the transparency channel that a session became a half day."""
    message = (
        f"Your leave that started at {format_time(session.start_time)} exceeded "
        f"{format_duration(settings.compensation_cap_minutes)} and was closed as a half day "
        f"({format_duration(session.actual_duration)})."
    )
    if settings.HALF_DAY_FORM_URL:
        message += f" Please apply via {settings.HALF_DAY_FORM_URL}"
    await NotificationService.send(
        db,
        recipient=session.user_id,
        type=NotificationType.alert,
        title="Converted To Half Day",
        message=message,
        entity_type="leave_session",
        entity_id=session.id,
    )
    await NotificationService.send(
        db,
        recipient=settings.TRANSPARENCY_CHANNEL,
        title="Converted To Half Day",
        message=f"<@{session.user_id}>'s leave passed the compensation cap and was converted to a half day.",
        entity_type="leave_session",
        entity_id=session.id,
    )


async def notify_work_complete(db: AsyncSession, session, pending: int) -> Notification:
    return await NotificationService.send(
        db,
        recipient=session.user_id,
        type=NotificationType.info,
        title="Extra Work Complete",
        message=(
            f"You have covered today's {format_duration(pending)} of pending work. "
            f"End your session with a short description of what you did."
        ),
        entity_type="extra_work_session",
        entity_id=session.id,
    )


async def notify_daily_summary(db: AsyncSession, summary) -> Notification:
    return await NotificationService.send(
        db,
        recipient=summary.user_id,
        type=NotificationType.info,
        title=f"Summary for {format_date(summary.date)}",
        message=(
            f"Leave: {format_duration(summary.total_leave_minutes)}, "
            f"extra work: {format_duration(summary.total_extra_work_minutes)}, "
            f"pending: {format_duration(summary.pending_extra_work_minutes)}."
        ),
        entity_type="daily_summary",
        entity_id=summary.id,
    )


async def notify_pending_work(db: AsyncSession, user_id: str, pending: int, days: int) -> Notification:
    return await NotificationService.send(
        db,
        recipient=user_id,
        type=NotificationType.reminder,
        title="Pending Extra Work",
        message=(
            f"You have {format_duration(pending)} of pending extra work from the last "
            f"{days} days. Use /work to log compensating time."
        ),
    )


async def notify_startup_recovery(db: AsyncSession, pending_requests: int, active_leave: int, active_work: int) -> Notification:
    return await NotificationService.send(
        db,
        recipient=settings.APPROVAL_CHANNEL,
        title="Bot Restarted",
        message=(
            f"In-flight state after restart: {pending_requests} pending request(s), "
            f"{active_leave} active leave session(s), {active_work} active extra work session(s)."
        ),
    )


def describe_request(leave_request) -> str:
    """One-line description of a request's type-specific fields."""
    kind = leave_request.type
    if kind == LeaveRequestType.intermediate.value:
        return f"intermediate logout for {format_duration(leave_request.planned_duration)}"
    if kind == LeaveRequestType.planned.value:
        return (
            f"planned leave {format_date(leave_request.start_date)} to "
            f"{format_date(leave_request.end_date)} ({leave_request.leave_duration_days} day(s))"
        )
    label = "early logout" if kind == LeaveRequestType.early_logout.value else "late login"
    return (
        f"{label} on {format_date(leave_request.leave_date)} at "
        f"{leave_request.actual_time.strftime('%I:%M %p')} "
        f"({format_duration(leave_request.shortfall_minutes)} short)"
    )
