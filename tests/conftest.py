"""Shared test fixtures — async DB, client, fake notification sender, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Settings are read once at import; configure them before any leavebot import
os.environ.setdefault("ADMIN_PASSWORD", "test-admin-password")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SLACK_BOT_TOKEN", "")
os.environ.setdefault("ENABLE_SCHEDULER", "false")

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leavebot.database import Base, get_db
from leavebot.main import create_app
from leavebot.notifications.outbox import commit_and_deliver, defer_delivery, discard
from leavebot.notifications.sender import set_sender
from leavebot.users.models import User

# Import ALL model modules so create_all sees every table
import leavebot.balance.models  # noqa: F401
import leavebot.common.audit  # noqa: F401
import leavebot.leave.models  # noqa: F401
import leavebot.notifications.models  # noqa: F401
import leavebot.sessions.models  # noqa: F401


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)

# Wednesday 2026-10-14 10:00 in Asia/Kolkata
BASE = datetime(2026, 10, 14, 4, 30, tzinfo=timezone.utc)


def at(minutes: float) -> datetime:
    """``BASE`` shifted by ``minutes``."""
    return BASE + timedelta(minutes=minutes)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from leavebot.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        defer_delivery(session)
        try:
            yield session
            await commit_and_deliver(session)
        except Exception:
            await session.rollback()
            discard(session)
            raise
        finally:
            await session.close()


# ── Notification sender ─────────────────────────────────────────────

class RecordingSender:
    """Collects (target, text) pairs; optionally fails for chosen targets."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail_for: set[str] = set()

    async def send(self, target: str, text: str) -> None:
        if target in self.fail_for:
            raise RuntimeError(f"cannot reach {target}")
        self.sent.append((target, text))

    def to(self, target: str) -> list[str]:
        return [text for t, text in self.sent if t == target]


@pytest.fixture(autouse=True)
def sender() -> RecordingSender:
    fake = RecordingSender()
    set_sender(fake)
    yield fake
    set_sender(None)


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Factories ───────────────────────────────────────────────────────

async def make_user(
    db: AsyncSession,
    user_id: str = "U001",
    name: str = "Asha Rao",
    email: Optional[str] = None,
) -> User:
    user = User(id=user_id, name=name, email=email)
    db.add(user)
    await db.flush()
    return user


@pytest.fixture
async def user(db) -> User:
    return await make_user(db)


def user_headers(user_id: str = "U001", name: str = "Asha Rao") -> dict[str, str]:
    return {"X-User-Id": user_id, "X-User-Name": name}
