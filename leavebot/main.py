"""Leave bot — FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from leavebot.admin.router import router as admin_router
from leavebot.common.exceptions import register_exception_handlers
from leavebot.common.rate_limit import limiter
from leavebot.config import settings
from leavebot.database import Base, engine
from leavebot.leave.router import router as leave_router
from leavebot.reconciliation.scheduler import shutdown_scheduler, start_scheduler
from leavebot.reconciliation.service import ReconciliationService
from leavebot.sessions.router import router as sessions_router

# Model modules must be imported before create_all
import leavebot.common.audit  # noqa: F401
import leavebot.notifications.models  # noqa: F401

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # APScheduler logs every job run at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, report in-flight state, run the scheduler."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await ReconciliationService.startup_recovery()

    if settings.ENABLE_SCHEDULER:
        start_scheduler()
    yield
    if settings.ENABLE_SCHEDULER:
        shutdown_scheduler()
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()
    app = FastAPI(
        title="Leave Bot",
        description="Intermediate logouts, extra-work compensation and leave approvals",
        version="1.0.0",
        docs_url="/api/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/api/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )

    # Exception handlers (RFC 7807)
    register_exception_handlers(app)

    # Rate limiting (slowapi)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check (no auth)
    @app.get("/api/v1/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": "1.0.0",
            "environment": settings.ENVIRONMENT,
            "scheduler": settings.ENABLE_SCHEDULER,
        }

    # Register routers
    app.include_router(sessions_router, prefix="/api/v1", tags=["sessions"])
    app.include_router(leave_router, prefix="/api/v1/requests", tags=["leave"])
    app.include_router(admin_router, prefix="/api/v1/admin", tags=["admin"])

    return app


app = create_app()
