"""Leave request router — submissions, approver decisions, pending list."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from leavebot.auth.dependencies import get_current_user
from leavebot.common.constants import LeaveRequestType
from leavebot.database import get_db
from leavebot.leave.schemas import (
    DecisionRequest,
    IntermediateLeaveCreate,
    LeaveRequestOut,
    PlannedLeaveCreate,
    ShortfallCreate,
)
from leavebot.leave.service import LeaveService
from leavebot.users.models import User

router = APIRouter(prefix="", tags=["leave"])


# ── Submissions ─────────────────────────────────────────────────────

@router.post("/intermediate", response_model=LeaveRequestOut, status_code=201)
async def submit_intermediate(
    body: IntermediateLeaveCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Request approval for an intermediate logout; approval starts the session."""
    return await LeaveService.submit(
        db, user.id, LeaveRequestType.intermediate, body.reason, body.handover,
        planned_minutes=body.planned_minutes,
    )


@router.post("/planned", response_model=LeaveRequestOut, status_code=201)
async def submit_planned(
    body: PlannedLeaveCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Request planned leave over a date range."""
    return await LeaveService.submit(
        db, user.id, LeaveRequestType.planned, body.reason, body.handover,
        start_date=body.start_date, end_date=body.end_date,
    )


@router.post("/early-logout", response_model=LeaveRequestOut, status_code=201)
async def submit_early_logout(
    body: ShortfallCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Report an early logout; approval adds the shortfall to pending work."""
    return await LeaveService.submit(
        db, user.id, LeaveRequestType.early_logout, body.reason, body.handover,
        actual_time=body.actual_time, standard_time=body.standard_time, leave_date=body.date,
    )


@router.post("/late-login", response_model=LeaveRequestOut, status_code=201)
async def submit_late_login(
    body: ShortfallCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Report a late login; approval adds the shortfall to pending work."""
    return await LeaveService.submit(
        db, user.id, LeaveRequestType.late_login, body.reason, body.handover,
        actual_time=body.actual_time, standard_time=body.standard_time, leave_date=body.date,
    )


# ── Decisions ───────────────────────────────────────────────────────

@router.get("/pending", response_model=list[LeaveRequestOut])
async def list_pending(
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """All requests awaiting a decision, oldest first."""
    return await LeaveService.list_pending(db)


@router.post("/{request_id}/decision", response_model=LeaveRequestOut)
async def decide_request(
    request_id: int,
    body: DecisionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Approve or deny a pending request. A second decision is rejected with 409."""
    return await LeaveService.decide(db, request_id, body.decision, user.id, body.notes)
