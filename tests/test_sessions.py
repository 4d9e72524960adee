"""Session state machine tests — leave and extra-work lifecycles."""

from __future__ import annotations

from datetime import date
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from leavebot.common.constants import DEFAULT_WORK_REASON
from leavebot.common.exceptions import ConflictError, NotFoundException, ValidationException
from leavebot.common.timeutils import as_utc
from leavebot.config import settings
from leavebot.sessions.models import ExtraWorkSession, LeaveSession
from leavebot.sessions.service import SessionService
from tests.conftest import at, make_user


async def _active_leave_count(db, user_id: str = "U001") -> int:
    return (
        await db.execute(
            select(func.count(LeaveSession.id)).where(
                LeaveSession.user_id == user_id, LeaveSession.end_time.is_(None)
            )
        )
    ).scalar_one()


class TestLeaveLifecycle:
    async def test_start_leave_creates_active_session(self, db, user):
        """A new session is active with the planned duration and office-local date."""
        session = await SessionService.start_leave(db, user.id, 60, "Doctor", now=at(0))

        assert session.is_active
        assert session.planned_duration == 60
        assert session.reason == "Doctor"
        assert session.date == date(2026, 10, 14)
        assert session.is_half_day is False

    async def test_second_start_conflicts(self, db, user):
        await SessionService.start_leave(db, user.id, 60, "Doctor", now=at(0))

        with pytest.raises(ConflictError):
            await SessionService.start_leave(db, user.id, 30, "Again", now=at(5))
        assert await _active_leave_count(db) == 1

    async def test_zero_duration_rejected(self, db, user):
        with pytest.raises(ValidationException):
            await SessionService.start_leave(db, user.id, 0, "Nothing", now=at(0))

    async def test_end_leave_records_actual(self, db, user):
        """actual = rounded elapsed minutes; end_time = now."""
        await SessionService.start_leave(db, user.id, 60, "Bank", now=at(0))

        closed = await SessionService.end_leave(db, user.id, now=at(65.4))

        assert closed.actual_duration == 65
        assert as_utc(closed.end_time) == at(65.4)
        assert not closed.is_active

    async def test_end_without_active_is_not_found(self, db, user):
        with pytest.raises(NotFoundException):
            await SessionService.end_leave(db, user.id, now=at(0))

    async def test_end_then_start_again(self, db, user):
        """A legitimate close never locks the user out."""
        await SessionService.start_leave(db, user.id, 30, "Coffee", now=at(0))
        await SessionService.end_leave(db, user.id, now=at(20))

        again = await SessionService.start_leave(db, user.id, 30, "Lunch", now=at(120))
        assert again.is_active
        assert await _active_leave_count(db) == 1

    async def test_double_end_fails_second_time(self, db, user):
        await SessionService.start_leave(db, user.id, 30, "Coffee", now=at(0))
        await SessionService.end_leave(db, user.id, now=at(20))

        with pytest.raises(NotFoundException):
            await SessionService.end_leave(db, user.id, now=at(21))

    async def test_extend_adds_minutes_without_cap(self, db, user):
        session = await SessionService.start_leave(db, user.id, 60, "Errand", now=at(0))

        extended = await SessionService.extend_leave(db, session.id, 30)
        assert extended.planned_duration == 90

        # No upper bound at this layer
        extended = await SessionService.extend_leave(db, session.id, 600)
        assert extended.planned_duration == 690
        assert extended.is_active

    async def test_extend_closed_session_not_found(self, db, user):
        session = await SessionService.start_leave(db, user.id, 60, "Errand", now=at(0))
        await SessionService.end_leave(db, user.id, now=at(10))

        with pytest.raises(NotFoundException):
            await SessionService.extend_leave(db, session.id, 30)

    async def test_extend_unknown_id_not_found(self, db, user):
        with pytest.raises(NotFoundException):
            await SessionService.extend_leave(db, 9999, 30)

    async def test_half_day_flag_on_auto_path(self, db, user):
        await SessionService.start_leave(db, user.id, 60, "Errand", now=at(0))
        closed = await SessionService.end_leave(db, user.id, now=at(151), half_day=True)
        assert closed.is_half_day is True
        assert closed.actual_duration == 151


class TestStoreEnforcedUniqueness:
    async def test_index_rejects_second_active_row(self, db, user):
        """The partial unique index refuses two open rows for one user."""
        db.add(LeaveSession(user_id=user.id, start_time=at(0), planned_duration=30, reason="a", date=date(2026, 10, 14)))
        await db.flush()
        db.add(LeaveSession(user_id=user.id, start_time=at(1), planned_duration=30, reason="b", date=date(2026, 10, 14)))
        with pytest.raises(IntegrityError):
            await db.flush()
        await db.rollback()

    async def test_closed_rows_do_not_collide(self, db, user):
        for i in range(3):
            db.add(
                LeaveSession(
                    user_id=user.id, start_time=at(i * 10), end_time=at(i * 10 + 5),
                    planned_duration=5, actual_duration=5, reason="x", date=date(2026, 10, 14),
                )
            )
        db.add(LeaveSession(user_id=user.id, start_time=at(40), planned_duration=5, reason="open", date=date(2026, 10, 14)))
        await db.flush()
        assert await _active_leave_count(db) == 1

    async def test_lost_insert_race_maps_to_conflict(self, db, user, monkeypatch):
        """If the pre-check misses a concurrent insert, the index still wins."""
        await SessionService.start_leave(db, user.id, 60, "First", now=at(0))
        await db.commit()

        monkeypatch.setattr(SessionService, "get_active_leave", AsyncMock(return_value=None))
        with pytest.raises(ConflictError):
            await SessionService.start_leave(db, user.id, 30, "Second", now=at(1))

        monkeypatch.undo()
        assert await _active_leave_count(db) == 1


class TestExtraWorkLifecycle:
    async def test_start_and_end_work(self, db, user):
        session = await SessionService.start_work(db, user.id, now=at(240))
        assert session.reason == DEFAULT_WORK_REASON
        assert session.is_active

        closed = await SessionService.end_work(db, user.id, "fixed bug", now=at(305))
        assert closed.duration == 65
        assert closed.work_description == "fixed bug"
        assert not closed.is_active

    async def test_custom_reason(self, db, user):
        session = await SessionService.start_work(db, user.id, "  Release prep ", now=at(0))
        assert session.reason == "Release prep"

    async def test_second_start_conflicts(self, db, user):
        await SessionService.start_work(db, user.id, now=at(0))
        with pytest.raises(ConflictError):
            await SessionService.start_work(db, user.id, now=at(1))

    async def test_end_without_active_is_not_found(self, db, user):
        with pytest.raises(NotFoundException):
            await SessionService.end_work(db, user.id, "nothing", now=at(0))

    async def test_description_optional(self, db, user):
        await SessionService.start_work(db, user.id, now=at(0))
        closed = await SessionService.end_work(db, user.id, now=at(30))
        assert closed.work_description is None

    async def test_leave_and_work_are_independent(self, db, user):
        await SessionService.start_leave(db, user.id, 30, "Coffee", now=at(0))
        work = await SessionService.start_work(db, user.id, now=at(1))
        assert work.is_active

    async def test_recent_work_sessions(self, db, user):
        for i in range(7):
            await SessionService.start_work(db, user.id, now=at(i * 60))
            await SessionService.end_work(db, user.id, f"task {i}", now=at(i * 60 + 30))
        await SessionService.start_work(db, user.id, now=at(500))

        recent = await SessionService.recent_work_sessions(db, user.id, now=at(600))
        assert len(recent) == 5
        assert recent[0].work_description == "task 6"
        assert all(s.end_time is not None for s in recent)


class TestCommands:
    async def test_log_out_posts_transparency_notice(self, db, user, sender):
        await SessionService.log_out(db, user.id, 45, "Pharmacy", now=at(0))
        notices = sender.to(settings.TRANSPARENCY_CHANNEL)
        assert len(notices) == 1
        assert "Asha Rao" in notices[0] and "45m" in notices[0]

    async def test_log_return_updates_summary(self, db, user, sender):
        await SessionService.log_out(db, user.id, 60, "Bank", now=at(0))
        session, summary, half_day = await SessionService.log_return(db, user.id, now=at(65))

        assert (session.planned_duration, session.actual_duration) == (60, 65)
        assert summary.total_leave_minutes == 65
        assert summary.pending_extra_work_minutes == 65
        assert half_day is False
        assert len(sender.to(settings.TRANSPARENCY_CHANNEL)) == 2

    async def test_log_return_flags_half_day_past_cap(self, db, user):
        await SessionService.log_out(db, user.id, 120, "Clinic", now=at(0))
        _, summary, half_day = await SessionService.log_return(db, user.id, now=at(160))
        assert half_day is True
        assert summary.pending_extra_work_minutes == settings.compensation_cap_minutes

    async def test_finish_work_offsets_pending(self, db, user):
        await SessionService.log_out(db, user.id, 60, "Bank", now=at(0))
        await SessionService.log_return(db, user.id, now=at(65))
        await SessionService.start_work(db, user.id, now=at(240))

        _, summary = await SessionService.finish_work(db, user.id, "fixed bug", now=at(305))
        assert summary.total_extra_work_minutes == 65
        assert summary.pending_extra_work_minutes == 0

    async def test_users_are_isolated(self, db, user):
        other = await make_user(db, "U002", "Ravi")
        await SessionService.start_leave(db, user.id, 30, "Coffee", now=at(0))
        session = await SessionService.start_leave(db, other.id, 30, "Coffee", now=at(0))
        assert session.is_active
