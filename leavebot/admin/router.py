"""Admin router — password-protected reporting.

The shared secret travels in the X-Admin-Password header.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leavebot.admin.schemas import AdminReportOut
from leavebot.admin.service import AdminService
from leavebot.auth.dependencies import check_admin_password, require_admin
from leavebot.balance.schemas import PendingWorkOut
from leavebot.balance.service import BalanceService
from leavebot.common.rate_limit import ADMIN_REPORT_LIMIT, limiter
from leavebot.config import settings
from leavebot.database import get_db

router = APIRouter(prefix="", tags=["admin"])


@router.get("/report", response_model=AdminReportOut)
@limiter.limit(ADMIN_REPORT_LIMIT)
async def admin_report(
    request: Request,
    x_admin_password: Optional[str] = Header(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Per-user leave / extra-work totals, the work log and pending requests."""
    # Wrong passwords count against the limit
    check_admin_password(x_admin_password)
    return await AdminService.report(db, start_date, end_date)


@router.get("/pending-work", response_model=list[PendingWorkOut], dependencies=[Depends(require_admin)])
async def pending_work(
    days: int = Query(settings.EXTRA_WORK_DEADLINE_DAYS, ge=1, le=90),
    db: AsyncSession = Depends(get_db),
):
    """Users with outstanding compensation minutes in the last ``days`` days."""
    return await BalanceService.users_with_pending_work(db, days)
