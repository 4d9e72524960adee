"""Balance aggregator tests — capped compensation and recompute-from-source."""

from __future__ import annotations

from datetime import date, timedelta

import pytest
from sqlalchemy import func, select

from leavebot.balance.models import DailySummary
from leavebot.balance.service import BalanceService, compute_pending
from leavebot.sessions.models import ExtraWorkSession, LeaveSession
from leavebot.sessions.service import SessionService
from tests.conftest import at, make_user

DAY = date(2026, 10, 14)


async def _closed_leave(db, user_id: str, minutes: int, start_offset: int = 0, day: date = DAY):
    db.add(
        LeaveSession(
            user_id=user_id,
            start_time=at(start_offset),
            end_time=at(start_offset + minutes),
            planned_duration=minutes,
            actual_duration=minutes,
            reason="seed",
            date=day,
        )
    )
    await db.flush()


async def _closed_work(db, user_id: str, minutes: int, start_offset: int = 300, day: date = DAY):
    db.add(
        ExtraWorkSession(
            user_id=user_id,
            start_time=at(start_offset),
            end_time=at(start_offset + minutes),
            duration=minutes,
            date=day,
            work_description="seed",
        )
    )
    await db.flush()


class TestComputePending:
    @pytest.mark.parametrize(
        "leave,extra,expected",
        [(200, 0, 150), (200, 100, 50), (100, 150, 0), (65, 0, 65), (0, 0, 0)],
    )
    def test_cap_rule(self, leave, extra, expected):
        assert compute_pending(leave, extra, cap=150) == expected

    def test_shortfall_shares_the_cap(self):
        assert compute_pending(100, 0, shortfall=90, cap=150) == 150
        assert compute_pending(0, 30, shortfall=90, cap=150) == 60


class TestRecompute:
    async def test_capped_pending(self, db, user):
        """200 min leave, no work → pending 150."""
        await _closed_leave(db, user.id, 120)
        await _closed_leave(db, user.id, 80, start_offset=200)

        summary = await BalanceService.recompute_daily_summary(db, user.id, DAY, now=at(400))

        assert summary.total_leave_minutes == 200
        assert summary.total_extra_work_minutes == 0
        assert summary.pending_extra_work_minutes == 150

    async def test_partial_compensation(self, db, user):
        await _closed_leave(db, user.id, 200)
        await _closed_work(db, user.id, 100)

        summary = await BalanceService.recompute_daily_summary(db, user.id, DAY, now=at(500))
        assert summary.pending_extra_work_minutes == 50

    async def test_never_negative(self, db, user):
        await _closed_leave(db, user.id, 100)
        await _closed_work(db, user.id, 150)

        summary = await BalanceService.recompute_daily_summary(db, user.id, DAY, now=at(500))
        assert summary.pending_extra_work_minutes == 0

    async def test_open_leave_counts_elapsed(self, db, user):
        await SessionService.start_leave(db, user.id, 60, "Out", now=at(0))

        summary = await BalanceService.recompute_daily_summary(db, user.id, DAY, now=at(40))
        assert summary.total_leave_minutes == 40
        assert summary.pending_extra_work_minutes == 40

    async def test_open_work_does_not_count(self, db, user):
        await _closed_leave(db, user.id, 60)
        await SessionService.start_work(db, user.id, now=at(200))

        summary = await BalanceService.recompute_daily_summary(db, user.id, DAY, now=at(260))
        assert summary.total_extra_work_minutes == 0
        assert summary.pending_extra_work_minutes == 60

    async def test_idempotent_upsert(self, db, user):
        """Two recomputes with no change → same values, one row."""
        await _closed_leave(db, user.id, 90)
        first = await BalanceService.recompute_daily_summary(db, user.id, DAY, now=at(300))
        first_values = (first.total_leave_minutes, first.pending_extra_work_minutes)

        second = await BalanceService.recompute_daily_summary(db, user.id, DAY, now=at(300))

        assert (second.total_leave_minutes, second.pending_extra_work_minutes) == first_values
        count = (
            await db.execute(select(func.count(DailySummary.id)).where(DailySummary.user_id == user.id))
        ).scalar_one()
        assert count == 1

    async def test_other_days_excluded(self, db, user):
        await _closed_leave(db, user.id, 90)
        await _closed_leave(db, user.id, 45, day=DAY - timedelta(days=1), start_offset=-1440)

        summary = await BalanceService.recompute_daily_summary(db, user.id, DAY, now=at(300))
        assert summary.total_leave_minutes == 90


class TestQueries:
    async def test_pending_minutes_defaults_to_zero(self, db, user):
        assert await BalanceService.get_pending_minutes(db, user.id, DAY) == 0

    async def test_users_with_pending_work(self, db, user):
        other = await make_user(db, "U002", "Ravi")
        await _closed_leave(db, user.id, 60)
        await _closed_leave(db, other.id, 30)
        await _closed_work(db, other.id, 30)
        await BalanceService.recompute_daily_summary(db, user.id, DAY, now=at(400))
        await BalanceService.recompute_daily_summary(db, other.id, DAY, now=at(400))

        rows = await BalanceService.users_with_pending_work(db, 7, now=at(400))

        assert [r["user_id"] for r in rows] == [user.id]
        assert rows[0]["pending_minutes"] == 60
        assert rows[0]["name"] == "Asha Rao"

    async def test_pending_outside_window_ignored(self, db, user):
        old_day = DAY - timedelta(days=10)
        await _closed_leave(db, user.id, 60, day=old_day, start_offset=-14400)
        await BalanceService.recompute_daily_summary(db, user.id, old_day, now=at(0))

        assert await BalanceService.users_with_pending_work(db, 7, now=at(0)) == []

    async def test_summaries_for_day(self, db, user):
        other = await make_user(db, "U002", "Ravi")
        await _closed_leave(db, user.id, 60)
        await BalanceService.recompute_daily_summary(db, user.id, DAY, now=at(400))
        await BalanceService.recompute_daily_summary(db, other.id, DAY, now=at(400))

        rows = await BalanceService.summaries_for_day(db, DAY)
        assert [s.user_id for s in rows] == [user.id]

    async def test_review(self, db, user):
        await SessionService.start_leave(db, user.id, 30, "Out", now=at(0))
        await SessionService.end_leave(db, user.id, now=at(30))
        await BalanceService.recompute_daily_summary(db, user.id, DAY, now=at(30))
        await SessionService.start_work(db, user.id, now=at(60))

        review = await BalanceService.review(db, user.id, now=at(90))

        assert review["date"] == DAY
        assert review["summary"].pending_extra_work_minutes == 30
        assert review["active_leave"] is None
        assert review["active_work"] is not None
        assert review["recent_requests"] == []
