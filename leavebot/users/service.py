"""User service — lazy creation and upsert-on-rename."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from leavebot.common.exceptions import NotFoundException
from leavebot.users.models import User


class UserService:
    """Async user operations."""

    @staticmethod
    async def upsert_user(
        db: AsyncSession,
        user_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> User:
        """Create the user on first interaction; refresh name/email when they change."""
        user = await db.get(User, user_id)
        if user is None:
            # Concurrent first commands for the same id both land here.
            insert = pg_insert if db.get_bind().dialect.name == "postgresql" else sqlite_insert
            stmt = insert(User).values(id=user_id, name=name or user_id, email=email)
            created = await db.execute(stmt.on_conflict_do_nothing(index_elements=["id"]))
            user = await db.get(User, user_id, populate_existing=True)
            if created.rowcount:
                return user

        changed = False
        if name and name != user.name:
            user.name = name
            changed = True
        if email and email != user.email:
            user.email = email
            changed = True
        if changed:
            user.updated_at = datetime.now(timezone.utc)
            await db.flush()
        return user

    @staticmethod
    async def get_user(db: AsyncSession, user_id: str) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundException("User", user_id)
        return user

    @staticmethod
    async def get_names(db: AsyncSession, user_ids: set[str]) -> dict[str, str]:
        """Map user ids to display names, falling back to the id itself."""
        if not user_ids:
            return {}
        result = await db.execute(select(User.id, User.name).where(User.id.in_(user_ids)))
        names = {row.id: row.name for row in result.all()}
        return {uid: names.get(uid, uid) for uid in user_ids}
