"""User tests — lazy creation, rename, concurrent first contact."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from leavebot.common.exceptions import NotFoundException
from leavebot.database import Base
from leavebot.users.models import User
from leavebot.users.service import UserService


@pytest.fixture
async def file_factory(tmp_path):
    """Two sessions on one file-backed database, each on its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'users.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 15},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


class TestUpsertUser:
    async def test_creates_on_first_contact(self, db):
        user = await UserService.upsert_user(db, "U100", "Asha Rao", "asha@example.com")

        assert user.id == "U100"
        assert user.name == "Asha Rao"
        assert user.email == "asha@example.com"

    async def test_name_defaults_to_id(self, db):
        user = await UserService.upsert_user(db, "M001")
        assert user.name == "M001"

    async def test_rename(self, db, user):
        renamed = await UserService.upsert_user(db, user.id, "Asha R.")

        assert renamed is user
        assert renamed.name == "Asha R."

    async def test_missing_name_keeps_existing(self, db, user):
        same = await UserService.upsert_user(db, user.id)
        assert same.name == "Asha Rao"

    async def test_rival_insert_between_lookup_and_create(self, file_factory, monkeypatch):
        """Another connection creates the user after our lookup missed."""
        async with file_factory() as db:
            original_get = db.get
            calls = []

            async def get_then_rival_commits(entity, ident, **kwargs):
                found = await original_get(entity, ident, **kwargs)
                if not calls:
                    async with file_factory() as rival:
                        await UserService.upsert_user(rival, "U900", "Asha Rao")
                        await rival.commit()
                calls.append(ident)
                return found

            monkeypatch.setattr(db, "get", get_then_rival_commits)

            user = await UserService.upsert_user(db, "U900", "Asha R.")
            await db.commit()

        assert user.id == "U900"
        assert user.name == "Asha R."
        async with file_factory() as db:
            count = (await db.execute(select(func.count(User.id)))).scalar_one()
            stored = await db.get(User, "U900")
        assert count == 1
        assert stored.name == "Asha R."


class TestLookups:
    async def test_get_user_missing(self, db):
        with pytest.raises(NotFoundException):
            await UserService.get_user(db, "nobody")

    async def test_get_names_falls_back_to_id(self, db, user):
        names = await UserService.get_names(db, {user.id, "U404"})
        assert names == {user.id: "Asha Rao", "U404": "U404"}

    async def test_get_names_empty(self, db):
        assert await UserService.get_names(db, set()) == {}
