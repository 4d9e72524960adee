"""Leave request service — submission and the one-shot approval workflow.

Deciding a request is a conditional UPDATE on ``status = 'pending'``; the row
count tells whether this caller won the decision. Side effects run only for
the winner, and if one of them fails the whole transaction is rolled back so
the request stays pending.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leavebot.balance.service import BalanceService
from leavebot.common.audit import create_audit_entry
from leavebot.common.constants import SHORTFALL_TYPES, Decision, LeaveRequestType, LeaveStatus
from leavebot.common.exceptions import (
    AlreadyDecidedError,
    AppException,
    NotFoundException,
    ValidationException,
)
from leavebot.common.timeutils import (
    calculate_return_time,
    local_today,
    minutes_of_day,
    parse_time_of_day,
    utc_now,
    working_days_between,
)
from leavebot.config import settings
from leavebot.leave.models import LeaveRequest
from leavebot.notifications.service import notify_leave_decided, notify_leave_request
from leavebot.sessions.service import SessionService
from leavebot.users.service import UserService

logger = logging.getLogger(__name__)


def compute_shortfall(
    request_type: LeaveRequestType,
    actual: time,
    standard: Optional[time] = None,
) -> int:
    """Minutes of standard time missed; must be strictly positive.

    Early logout: standard logout minus actual departure.
    Late login: actual arrival minus standard login.
    """
    if request_type == LeaveRequestType.early_logout:
        standard = standard or parse_time_of_day(settings.STANDARD_LOGOUT_TIME)
        shortfall = minutes_of_day(standard) - minutes_of_day(actual)
    elif request_type == LeaveRequestType.late_login:
        standard = standard or parse_time_of_day(settings.STANDARD_LOGIN_TIME)
        shortfall = minutes_of_day(actual) - minutes_of_day(standard)
    else:
        raise ValidationException({"type": [f"{request_type.value} has no shortfall."]})

    if shortfall <= 0:
        raise ValidationException(
            {"actual_time": ["The given time does not fall short of the standard time."]}
        )
    return shortfall


def _require_text(errors: dict[str, list[str]], field: str, value: Optional[str]) -> None:
    if not value or not value.strip():
        errors.setdefault(field, []).append("This field is required.")


class LeaveService:
    """Async leave request operations."""

    # ─────────────────────────────────────────────────────────────────
    # Submission
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit(
        db: AsyncSession,
        user_id: str,
        request_type: LeaveRequestType,
        reason: str,
        handover: str,
        *,
        planned_minutes: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        actual_time: Optional[time] = None,
        standard_time: Optional[time] = None,
        leave_date: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> LeaveRequest:
        """Validate the type-specific fields and insert a PENDING request.

        Multiple pending requests per user are allowed. Everything is
        validated before the insert so a rejected submission writes nothing.
        """
        now = now or utc_now()
        errors: dict[str, list[str]] = {}
        _require_text(errors, "reason", reason)
        _require_text(errors, "handover", handover)

        request = LeaveRequest(
            user_id=user_id,
            type=request_type.value,
            reason=(reason or "").strip(),
            task_escalation=(handover or "").strip(),
            status=LeaveStatus.pending.value,
        )

        if request_type == LeaveRequestType.intermediate:
            if not planned_minutes or planned_minutes <= 0:
                errors.setdefault("duration", []).append("Duration must be greater than zero.")
            elif planned_minutes > settings.max_leave_minutes:
                errors.setdefault("duration", []).append(
                    f"Duration cannot exceed {settings.MAX_LEAVE_HOURS:g} hours."
                )
            else:
                request.planned_duration = planned_minutes
                request.expected_return_time = calculate_return_time(planned_minutes, now)
            request.leave_date = local_today(now)

        elif request_type == LeaveRequestType.planned:
            if start_date is None or end_date is None:
                errors.setdefault("dates", []).append("Start and end dates are required.")
            elif end_date < start_date:
                errors.setdefault("end_date", []).append("End date cannot be before start date.")
            elif (end_date - start_date).days + 1 > settings.MAX_PLANNED_LEAVE_DAYS:
                errors.setdefault("end_date", []).append(
                    f"Planned leave cannot span more than {settings.MAX_PLANNED_LEAVE_DAYS} days."
                )
            else:
                days = working_days_between(start_date, end_date)
                if days <= 0:
                    errors.setdefault("dates", []).append("The range contains no working days.")
                request.start_date = start_date
                request.end_date = end_date
                request.leave_duration_days = days
                request.leave_date = start_date

        elif request_type in SHORTFALL_TYPES:
            if actual_time is None:
                errors.setdefault("actual_time", []).append("Actual time is required.")
            else:
                try:
                    shortfall = compute_shortfall(request_type, actual_time, standard_time)
                except ValidationException as exc:
                    for field, messages in exc.errors.items():
                        errors.setdefault(field, []).extend(messages)
                else:
                    default = (
                        settings.STANDARD_LOGOUT_TIME
                        if request_type == LeaveRequestType.early_logout
                        else settings.STANDARD_LOGIN_TIME
                    )
                    request.standard_time = standard_time or parse_time_of_day(default)
                    request.actual_time = actual_time
                    request.shortfall_minutes = shortfall
            request.leave_date = leave_date or local_today(now)

        if errors:
            raise ValidationException(errors)

        db.add(request)
        await db.flush()
        logger.info("Leave request %s (%s) submitted by %s", request.id, request.type, user_id)

        user = await UserService.get_user(db, user_id)
        await notify_leave_request(db, request, user.name)
        return request

    # ─────────────────────────────────────────────────────────────────
    # Decision
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def decide(
        db: AsyncSession,
        request_id: int,
        decision: Decision,
        approver_id: str,
        notes: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> LeaveRequest:
        """Approve or deny a pending request exactly once.

        Raises NotFoundException for an unknown id and AlreadyDecidedError when
        the request is no longer pending. If an approval side effect fails
        (e.g. the requester already has an active leave), the transaction is
        rolled back and the error propagates.
        """
        now = now or utc_now()
        request = await db.get(LeaveRequest, request_id)
        if request is None:
            raise NotFoundException("LeaveRequest", request_id)
        if not request.is_pending:
            raise AlreadyDecidedError(request_id, request.status)

        new_status = LeaveStatus.approved if decision == Decision.approve else LeaveStatus.denied
        result = await db.execute(
            update(LeaveRequest)
            .where(LeaveRequest.id == request_id, LeaveRequest.status == LeaveStatus.pending.value)
            .values(
                status=new_status.value,
                approved_by=approver_id,
                approved_at=now,
                approval_notes=notes,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await db.get(LeaveRequest, request_id, populate_existing=True)
            raise AlreadyDecidedError(request_id, current.status if current else "decided")

        request = await db.get(LeaveRequest, request_id, populate_existing=True)

        if new_status == LeaveStatus.approved:
            try:
                await LeaveService._apply_approval(db, request, now)
            except AppException:
                await db.rollback()
                logger.warning("Approval of request %s rolled back", request_id)
                raise

        await create_audit_entry(
            db,
            action=new_status.value,
            entity_type="leave_request",
            entity_id=request.id,
            actor_id=approver_id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": new_status.value, "notes": notes},
        )
        logger.info("Leave request %s %s by %s", request_id, new_status.value, approver_id)

        approver = await UserService.upsert_user(db, approver_id)
        await notify_leave_decided(db, request, approver.name)
        return request

    @staticmethod
    async def _apply_approval(db: AsyncSession, request: LeaveRequest, now: datetime) -> None:
        kind = LeaveRequestType(request.type)
        if kind == LeaveRequestType.intermediate:
            await SessionService.log_out(
                db, request.user_id, request.planned_duration, request.reason, now=now,
            )
        elif kind in SHORTFALL_TYPES:
            # The summary reads approved shortfalls back from this table.
            await BalanceService.recompute_daily_summary(
                db, request.user_id, request.leave_date, now=now,
            )

    # ─────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_request(db: AsyncSession, request_id: int) -> LeaveRequest:
        request = await db.get(LeaveRequest, request_id)
        if request is None:
            raise NotFoundException("LeaveRequest", request_id)
        return request

    @staticmethod
    async def list_pending(db: AsyncSession) -> list[LeaveRequest]:
        """All pending requests, oldest first."""
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.status == LeaveStatus.pending.value)
            .order_by(LeaveRequest.created_at, LeaveRequest.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def user_requests(
        db: AsyncSession,
        user_id: str,
        limit: int = 5,
    ) -> list[LeaveRequest]:
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.user_id == user_id)
            .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
