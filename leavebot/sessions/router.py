"""Sessions router — log out / return / extend, extra work start / end, review.

The acting chat user comes from the X-User-Id header.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from leavebot.auth.dependencies import get_current_user
from leavebot.balance.service import BalanceService
from leavebot.common.exceptions import NotFoundException, ValidationException
from leavebot.common.timeutils import calculate_return_time, format_duration, local_today
from leavebot.config import settings
from leavebot.database import get_db
from leavebot.sessions.schemas import (
    LeaveExtendRequest,
    LeaveReturnOut,
    LeaveSessionOut,
    LeaveStartOut,
    LeaveStartRequest,
    ReviewOut,
    WorkEndOut,
    WorkEndRequest,
    WorkStartOut,
    WorkStartRequest,
)
from leavebot.sessions.service import SessionService
from leavebot.users.models import User

router = APIRouter(prefix="", tags=["sessions"])


def _check_max_leave(total_minutes: int) -> None:
    if total_minutes > settings.max_leave_minutes:
        raise ValidationException(
            {"duration": [f"Leave cannot exceed {format_duration(settings.max_leave_minutes)} in total."]}
        )


# ── POST /leave/start ───────────────────────────────────────────────

@router.post("/leave/start", response_model=LeaveStartOut, status_code=201)
async def start_leave(
    body: LeaveStartRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Log an intermediate logout."""
    _check_max_leave(body.planned_minutes)
    session = await SessionService.log_out(db, user.id, body.planned_minutes, body.reason)
    exceeds = session.planned_duration > settings.compensation_cap_minutes
    return LeaveStartOut(
        session=LeaveSessionOut.model_validate(session),
        expected_return=calculate_return_time(session.planned_duration, session.start_time),
        exceeds_cap=exceeds,
        half_day_form_url=(settings.HALF_DAY_FORM_URL or None) if exceeds else None,
    )


# ── POST /leave/return ──────────────────────────────────────────────

@router.post("/leave/return", response_model=LeaveReturnOut)
async def return_from_leave(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Close the active leave session."""
    session, summary, half_day = await SessionService.log_return(db, user.id)
    return {
        "session": session,
        "summary": summary,
        "half_day": half_day,
        "half_day_form_url": (settings.HALF_DAY_FORM_URL or None) if half_day else None,
    }


# ── POST /leave/extend ──────────────────────────────────────────────

@router.post("/leave/extend", response_model=LeaveSessionOut)
async def extend_leave(
    body: LeaveExtendRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Extend the active leave session's planned duration."""
    active = await SessionService.get_active_leave(db, user.id)
    if active is None:
        raise NotFoundException("LeaveSession", user.id, "You don't have an active leave session.")
    _check_max_leave(active.planned_duration + body.additional_minutes)
    return await SessionService.extend_leave(db, active.id, body.additional_minutes)


# ── POST /work/start ────────────────────────────────────────────────

@router.post("/work/start", response_model=WorkStartOut, status_code=201)
async def start_work(
    body: WorkStartRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Start an extra-work session."""
    session = await SessionService.start_work(db, user.id, body.reason)
    pending = await BalanceService.get_pending_minutes(db, user.id, local_today())
    return {"session": session, "pending_minutes": pending}


# ── POST /work/end ──────────────────────────────────────────────────

@router.post("/work/end", response_model=WorkEndOut)
async def end_work(
    body: WorkEndRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """End the active extra-work session with a description of the work."""
    session, summary = await SessionService.finish_work(db, user.id, body.description)
    return {"session": session, "summary": summary}


# ── GET /review ─────────────────────────────────────────────────────

@router.get("/review", response_model=ReviewOut)
async def review(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Today's balance, open sessions and recent activity."""
    return await BalanceService.review(db, user.id)
