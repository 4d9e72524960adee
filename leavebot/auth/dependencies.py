"""Request identity — chat user headers and the shared admin secret."""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Depends, Header
from fastapi.exceptions import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from leavebot.common.exceptions import ForbiddenException
from leavebot.config import settings
from leavebot.database import get_db
from leavebot.users.models import User
from leavebot.users.service import UserService


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the acting chat user, creating or renaming them on the fly."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header.")
    return await UserService.upsert_user(db, user_id, x_user_name, x_user_email)


def check_admin_password(password: Optional[str]) -> None:
    """Constant-time comparison against ADMIN_PASSWORD."""
    if not password or not hmac.compare_digest(
        password.encode(), settings.ADMIN_PASSWORD.encode()
    ):
        raise ForbiddenException("Invalid admin password.")


async def require_admin(x_admin_password: Optional[str] = Header(None)) -> None:
    """FastAPI dependency guarding admin-only routes."""
    check_admin_password(x_admin_password)
