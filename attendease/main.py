"""AttendEase — FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from attendease.attendance.router import holidays_router, settings_router
from attendease.attendance.router import router as attendance_router
from attendease.auth.router import router as auth_router
from attendease.common.exceptions import register_exception_handlers
from attendease.common.rate_limit import limiter
from attendease.companies.router import router as companies_router
from attendease.config import settings
from attendease.core_hr.router import employees_router, profile_router, teams_router
from attendease.database import engine
from attendease.leave.router import router as leave_router
from attendease.reports.router import router as reports_router

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info("AttendEase API starting (%s)", settings.ENVIRONMENT)
    yield
    await engine.dispose()
    logger.info("AttendEase API stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    _configure_logging()

    app = FastAPI(
        title="AttendEase",
        description="Attendance, leave and employee management API",
        version="1.0.0",
        docs_url="/api/docs" if not settings.is_production else None,
        redoc_url="/api/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # Problem-detail handlers, including 409 on constraint races and 429 from slowapi
    register_exception_handlers(app)
    app.state.limiter = limiter

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
        }

    # Register routers
    app.include_router(auth_router, prefix="/api/v1/auth", tags=["auth"])
    app.include_router(companies_router, prefix="/api/v1/companies", tags=["companies"])
    app.include_router(employees_router, prefix="/api/v1/employees", tags=["employees"])
    app.include_router(profile_router, prefix="/api/v1/profile", tags=["profile"])
    app.include_router(teams_router, prefix="/api/v1/teams", tags=["teams"])
    app.include_router(attendance_router, prefix="/api/v1/attendance", tags=["attendance"])
    app.include_router(holidays_router, prefix="/api/v1/holidays", tags=["holidays"])
    app.include_router(settings_router, prefix="/api/v1/settings", tags=["settings"])
    app.include_router(leave_router, prefix="/api/v1/leave", tags=["leave"])
    app.include_router(reports_router, prefix="/api/v1/reports", tags=["reports"])

    return app


app = create_app()
