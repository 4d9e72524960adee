"""Post-commit notification delivery.

A session armed with ``defer_delivery`` collects notifications instead of
sending them. ``commit_and_deliver`` commits the business transaction first,
then hands each message to its sender and records the outcome on the row.
Sessions that were never armed deliver inline.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leavebot.config import settings
from leavebot.notifications.sender import Sender

logger = logging.getLogger(__name__)

OUTBOX_KEY = "notification_outbox"


def defer_delivery(db: AsyncSession) -> None:
    db.info[OUTBOX_KEY] = []


def is_deferred(db: AsyncSession) -> bool:
    return OUTBOX_KEY in db.info


def enqueue(db: AsyncSession, notification, sender: Sender) -> None:
    db.info[OUTBOX_KEY].append((notification, sender))


def discard(db: AsyncSession) -> int:
    """Drop queued messages whose transaction was rolled back."""
    queued = db.info.get(OUTBOX_KEY) or []
    if queued:
        logger.debug("Discarding %s undelivered notification(s)", len(queued))
    db.info[OUTBOX_KEY] = []
    return len(queued)


async def deliver(notification, sender: Sender) -> None:
    """Attempt delivery once; the outcome is stored on the row, never raised."""
    try:
        await asyncio.wait_for(
            sender.send(notification.recipient, f"*{notification.title}*\n{notification.message}"),
            timeout=settings.NOTIFY_TIMEOUT_SECONDS,
        )
        notification.delivered = True
    except asyncio.TimeoutError:
        notification.error = "timeout"
        logger.warning("Notification to %s timed out (%s)", notification.recipient, notification.title)
    except Exception as exc:
        notification.error = str(exc)[:500]
        logger.warning(
            "Notification to %s failed (%s): %s", notification.recipient, notification.title, exc,
        )


async def commit_and_deliver(db: AsyncSession) -> int:
    """Commit, then send everything queued during the transaction."""
    await db.commit()

    queued = list(db.info.get(OUTBOX_KEY) or [])
    if not queued:
        return 0
    db.info[OUTBOX_KEY] = []

    for notification, sender in queued:
        await deliver(notification, sender)
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Could not record delivery of %s notification(s): %s", len(queued), exc)
    return len(queued)
