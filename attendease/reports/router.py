"""Reports router — read-only aggregates, scoped to the caller's role.

Employees see their own figures, managers their team, admins the company.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.common.clock import local_today
from attendease.common.scoping import Viewer
from attendease.companies.dependencies import get_viewer
from attendease.database import get_db
from attendease.reports.schemas import (
    AttendanceSummaryResponse,
    DailyAttendanceResponse,
    DepartmentStatsResponse,
    LeaveSummaryResponse,
)
from attendease.reports.service import ReportService

router = APIRouter()

_PERIOD = Query("month", pattern="^(week|month|quarter|year)$", description="Trailing window")


# ── GET /attendance-summary ─────────────────────────────────────────

@router.get("/attendance-summary", response_model=AttendanceSummaryResponse)
async def attendance_summary(
    period: str = _PERIOD,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    department: Optional[str] = Query(None),
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    """Present / late / absent counts and the attendance rate."""
    return await ReportService.attendance_summary(
        db, viewer,
        period=period,
        today=local_today(),
        start_date=start_date,
        end_date=end_date,
        department=department,
    )


# ── GET /leave-summary ──────────────────────────────────────────────

@router.get("/leave-summary", response_model=LeaveSummaryResponse)
async def leave_summary(
    period: str = _PERIOD,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    department: Optional[str] = Query(None),
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    """Approved leave days bucketed by leave type."""
    return await ReportService.leave_summary(
        db, viewer,
        period=period,
        today=local_today(),
        start_date=start_date,
        end_date=end_date,
        department=department,
    )


# ── GET /departments ────────────────────────────────────────────────

@router.get("/departments", response_model=DepartmentStatsResponse)
async def department_stats(
    period: str = _PERIOD,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await ReportService.department_stats(
        db, viewer,
        period=period,
        today=local_today(),
        start_date=start_date,
        end_date=end_date,
    )


# ── GET /daily ──────────────────────────────────────────────────────

@router.get("/daily", response_model=DailyAttendanceResponse)
async def daily_attendance(
    day: Optional[date] = Query(None, alias="date"),
    department: Optional[str] = Query(None),
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    """Per-employee status for one day (defaults to today)."""
    return await ReportService.daily_attendance(
        db, viewer,
        day=day or local_today(),
        department=department,
    )
