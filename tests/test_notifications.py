"""Notification tests — delivery log, failure handling, sender selection."""

from __future__ import annotations

import asyncio
import logging

import pytest

from leavebot.common.constants import NotificationType
from leavebot.config import settings
from leavebot.leave.models import LeaveRequest
from leavebot.notifications import sender as sender_module
from leavebot.notifications.models import Notification
from leavebot.notifications.outbox import commit_and_deliver, defer_delivery, discard
from leavebot.notifications.sender import LoggingSender, SlackSender, get_sender, set_sender
from leavebot.notifications.service import NotificationService, describe_request
from leavebot.sessions.service import SessionService
from tests.conftest import TestSessionFactory, at


class TestSend:
    async def test_delivered_is_recorded(self, db, sender):
        notification = await NotificationService.send(
            db, recipient="U001", title="Hello", message="World",
        )

        assert notification.id is not None
        assert notification.delivered is True
        assert notification.error is None
        assert sender.sent == [("U001", "*Hello*\nWorld")]

    async def test_failure_is_stored_not_raised(self, db, sender):
        sender.fail_for.add("U404")

        notification = await NotificationService.send(
            db, recipient="U404", type=NotificationType.alert, title="Hi", message="There",
        )

        assert notification.delivered is False
        assert "cannot reach U404" in notification.error
        assert notification.type == "alert"

    async def test_timeout_is_bounded(self, db, monkeypatch):
        class SlowSender:
            async def send(self, target, text):
                await asyncio.sleep(5)

        monkeypatch.setattr(settings, "NOTIFY_TIMEOUT_SECONDS", 0.01)

        notification = await NotificationService.send(
            db, recipient="U001", title="Slow", message="...", sender=SlowSender(),
        )

        assert notification.delivered is False
        assert notification.error == "timeout"

    async def test_failure_is_logged(self, db, sender, caplog):
        sender.fail_for.add("#gone")
        with caplog.at_level(logging.WARNING, logger="leavebot.notifications"):
            await NotificationService.send(db, recipient="#gone", title="T", message="M")
        assert "#gone" in caplog.text

    async def test_get_for_recipient(self, db):
        for i in range(3):
            await NotificationService.send(db, recipient="U001", title=f"n{i}", message="m")
        await NotificationService.send(db, recipient="U002", title="other", message="m")

        rows = await NotificationService.get_for_recipient(db, "U001")

        assert len(rows) == 3
        assert {r.title for r in rows} == {"n0", "n1", "n2"}


class TestDeferredDelivery:
    async def test_held_until_commit(self, db, sender):
        defer_delivery(db)
        notification = await NotificationService.send(db, recipient="U001", title="Hello", message="World")

        assert sender.sent == []
        assert notification.delivered is False

        assert await commit_and_deliver(db) == 1

        assert sender.sent == [("U001", "*Hello*\nWorld")]
        async with TestSessionFactory() as other:
            stored = await other.get(Notification, notification.id)
        assert stored.delivered is True

    async def test_rolled_back_command_sends_nothing(self, db, user, sender):
        await db.commit()
        defer_delivery(db)
        await SessionService.log_out(db, user.id, 30, "Coffee", now=at(0))

        await db.rollback()
        assert discard(db) == 1
        assert await commit_and_deliver(db) == 0

        assert sender.sent == []

    async def test_failure_recorded_after_commit(self, db, sender):
        sender.fail_for.add("U404")
        defer_delivery(db)
        notification = await NotificationService.send(db, recipient="U404", title="Hi", message="There")

        await commit_and_deliver(db)

        assert notification.delivered is False
        assert "cannot reach U404" in notification.error

class TestSenderSelection:
    def test_logging_sender_without_token(self, monkeypatch):
        set_sender(None)
        monkeypatch.setattr(settings, "SLACK_BOT_TOKEN", "")
        assert isinstance(get_sender(), LoggingSender)

    def test_slack_sender_with_token(self, monkeypatch):
        set_sender(None)
        monkeypatch.setattr(settings, "SLACK_BOT_TOKEN", "xoxb-test")
        chosen = get_sender()
        assert isinstance(chosen, SlackSender)
        assert sender_module.get_sender() is chosen

    async def test_logging_sender_writes_log(self, caplog):
        with caplog.at_level(logging.INFO, logger="leavebot.notifications.sender"):
            await LoggingSender().send("#general", "hello")
        assert "hello" in caplog.text


class TestDescribeRequest:
    @pytest.mark.parametrize(
        "fields,expected",
        [
            ({"type": "intermediate", "planned_duration": 90}, "intermediate logout for 1h 30m"),
            (
                {
                    "type": "planned",
                    "start_date": at(0).date(),
                    "end_date": at(60 * 24 * 2).date(),
                    "leave_duration_days": 3,
                },
                "(3 day(s))",
            ),
        ],
    )
    def test_describe(self, fields, expected):
        assert expected in describe_request(LeaveRequest(**fields))
