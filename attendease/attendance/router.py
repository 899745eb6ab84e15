"""Attendance router — check in/out, records, overrides, backdated entries, holidays, settings.

All endpoints require authentication. Admin-specific endpoints enforce role checks.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.attendance.schemas import (
    AttendanceResponse,
    AttendanceWithEmployee,
    BackdatedAttendanceRequest,
    CheckInRequest,
    CheckOutRequest,
    HolidayCreate,
    HolidayResponse,
    HolidayUpdate,
    LateMarkTimeResponse,
    LateMarkTimeUpdate,
    MarkAttendanceRequest,
)
from attendease.attendance.service import AttendanceService, HolidayService
from attendease.common.constants import RECENT_ATTENDANCE_LIMIT, AttendanceStatus, UserRole
from attendease.common.pagination import PaginationParams
from attendease.common.scoping import Viewer
from attendease.companies.dependencies import get_viewer, require_viewer
from attendease.database import get_db

router = APIRouter(prefix="", tags=["attendance"])
holidays_router = APIRouter(prefix="", tags=["holidays"])
settings_router = APIRouter(prefix="", tags=["settings"])

_admin_viewer = require_viewer(UserRole.admin)


# ── POST /check-in ──────────────────────────────────────────────────

@router.post("/check-in", response_model=AttendanceResponse)
async def check_in(
    body: CheckInRequest,
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    """Record today's check-in; repeating it updates the same row."""
    return await AttendanceService.check_in(
        db, viewer, location=body.location, notes=body.notes,
    )


# ── POST /check-out ─────────────────────────────────────────────────

@router.post("/check-out", response_model=AttendanceResponse)
async def check_out(
    body: CheckOutRequest,
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.check_out(db, viewer, notes=body.notes)


# ── GET /today ──────────────────────────────────────────────────────

@router.get("/today", response_model=Optional[AttendanceResponse])
async def get_today(
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    """Today's record, or ``null`` before the first check-in."""
    return await AttendanceService.get_today(db, viewer)


# ── GET /recent ─────────────────────────────────────────────────────

@router.get("/recent", response_model=list[AttendanceResponse])
async def get_recent(
    limit: int = Query(RECENT_ATTENDANCE_LIMIT, ge=1, le=RECENT_ATTENDANCE_LIMIT),
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.get_recent(db, viewer, limit)


# ── GET / — role-scoped list ───────────────────────────────────────

@router.get("")
async def list_attendance(
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
    pagination: PaginationParams = Depends(),
    employee_id: Optional[uuid.UUID] = Query(None),
    status: Optional[AttendanceStatus] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    pending_approval: Optional[bool] = Query(None),
):
    """Own rows for employees, team rows for managers, company rows for admins."""
    result = await AttendanceService.list_attendance(
        db, viewer, pagination,
        employee_id=employee_id,
        status=status,
        from_date=from_date,
        to_date=to_date,
        pending_approval=pending_approval,
    )
    return {
        "data": [item.model_dump(mode="json") for item in result.data],
        "meta": result.meta.model_dump(),
    }


# ── POST /mark — admin override ────────────────────────────────────

@router.post("/mark", response_model=AttendanceResponse)
async def mark_attendance(
    body: MarkAttendanceRequest,
    viewer: Viewer = Depends(_admin_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.mark_attendance(db, viewer, body)


# ── Backdated entries ───────────────────────────────────────────────

@router.post("/backdated", response_model=AttendanceResponse, status_code=201)
async def request_backdated(
    body: BackdatedAttendanceRequest,
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.request_backdated(db, viewer, body)


@router.get("/pending", response_model=list[AttendanceWithEmployee])
async def list_pending(
    viewer: Viewer = Depends(_admin_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.list_pending(db, viewer)


@router.post("/{record_id}/approve", response_model=AttendanceResponse)
async def approve_pending(
    record_id: uuid.UUID,
    viewer: Viewer = Depends(_admin_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await AttendanceService.approve_pending(db, viewer, record_id)


@router.post("/{record_id}/reject", status_code=204)
async def reject_pending(
    record_id: uuid.UUID,
    viewer: Viewer = Depends(_admin_viewer),
    db: AsyncSession = Depends(get_db),
):
    await AttendanceService.reject_pending(db, viewer, record_id)


# ═════════════════════════════════════════════════════════════════════
# Holidays
# ═════════════════════════════════════════════════════════════════════


@holidays_router.get("", response_model=list[HolidayResponse])
async def list_holidays(
    year: Optional[int] = Query(None, ge=1970, le=2100),
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await HolidayService.list_holidays(db, viewer, year)


@holidays_router.post("", response_model=HolidayResponse, status_code=201)
async def create_holiday(
    body: HolidayCreate,
    viewer: Viewer = Depends(_admin_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await HolidayService.create_holiday(db, viewer, body)


@holidays_router.patch("/{holiday_id}", response_model=HolidayResponse)
async def update_holiday(
    holiday_id: uuid.UUID,
    body: HolidayUpdate,
    viewer: Viewer = Depends(_admin_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await HolidayService.update_holiday(db, viewer, holiday_id, body)


@holidays_router.delete("/{holiday_id}", status_code=204)
async def delete_holiday(
    holiday_id: uuid.UUID,
    viewer: Viewer = Depends(_admin_viewer),
    db: AsyncSession = Depends(get_db),
):
    await HolidayService.delete_holiday(db, viewer, holiday_id)


# ═════════════════════════════════════════════════════════════════════
# Settings
# ═════════════════════════════════════════════════════════════════════


@settings_router.get("/late-mark-time", response_model=LateMarkTimeResponse)
async def get_late_mark_time(
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return LateMarkTimeResponse(late_mark_time=await AttendanceService.get_late_mark_time(db))


@settings_router.put("/late-mark-time", response_model=LateMarkTimeResponse)
async def update_late_mark_time(
    body: LateMarkTimeUpdate,
    viewer: Viewer = Depends(_admin_viewer),
    db: AsyncSession = Depends(get_db),
):
    value = await AttendanceService.update_late_mark_time(db, viewer, body.late_mark_time)
    return LateMarkTimeResponse(late_mark_time=value)
