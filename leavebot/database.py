"""Async SQLAlchemy engine and session management."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from leavebot.config import settings
from leavebot.notifications.outbox import commit_and_deliver, defer_delivery, discard

_engine_kwargs: dict = {"pool_pre_ping": True}
if not settings.DATABASE_URL.startswith("sqlite"):
    _engine_kwargs.update(pool_size=10, max_overflow=20)

# Async engine shared by the API and the reconciliation jobs
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    **_engine_kwargs,
)

# Async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


async def get_db() -> AsyncSession:
    """FastAPI dependency: yield an async database session.

    Notifications queued by the request go out only after its commit.
    """
    async with async_session_factory() as session:
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
