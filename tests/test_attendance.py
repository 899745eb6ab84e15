"""Attendance module test suite — late detection, check-in upsert, overrides,
backdated requests, holidays and the late cutoff setting.

Tests exercise both the service layer (direct DB) and the HTTP API (via router).
Uses the shared conftest.py pattern with in-memory SQLite.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

import pytest
from sqlalchemy import func, select

from attendease.attendance.models import AttendanceRecord, Holiday
from attendease.attendance.schemas import (
    BackdatedAttendanceRequest,
    HolidayCreate,
    MarkAttendanceRequest,
)
from attendease.attendance.service import AttendanceService, HolidayService
from attendease.common.audit import AuditTrail
from attendease.common.clock import local_today
from attendease.common.constants import AttendanceStatus, UserRole
from attendease.common.exceptions import (
    ConflictError,
    ForbiddenException,
    ValidationException,
)
from attendease.config import settings
from tests.conftest import TestSessionFactory, auth_headers_for, viewer_for

CUTOFF = time(9, 30)


def _utc(year, month, day, hour, minute, second=0) -> datetime:
    return datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc)


async def _row_count(db, employee_id) -> int:
    result = await db.execute(
        select(func.count()).select_from(AttendanceRecord).where(
            AttendanceRecord.employee_id == employee_id,
        )
    )
    return result.scalar_one()


# ═════════════════════════════════════════════════════════════════════
# 1. STATUS DERIVATION
# ═════════════════════════════════════════════════════════════════════


def test_no_check_in_is_absent():
    assert AttendanceService.derive_status(None, CUTOFF) == AttendanceStatus.absent


def test_check_in_at_cutoff_is_present():
    assert AttendanceService.derive_status(_utc(2024, 1, 15, 9, 30), CUTOFF) == AttendanceStatus.present


def test_seconds_within_cutoff_minute_are_present():
    assert AttendanceService.derive_status(_utc(2024, 1, 15, 9, 30, 45), CUTOFF) == AttendanceStatus.present
    assert AttendanceService.derive_status(_utc(2024, 1, 15, 9, 30, 59), CUTOFF) == AttendanceStatus.present


def test_check_in_the_minute_after_cutoff_is_late():
    assert AttendanceService.derive_status(_utc(2024, 1, 15, 9, 31), CUTOFF) == AttendanceStatus.late


def test_early_check_in_is_present():
    assert AttendanceService.derive_status(_utc(2024, 1, 15, 8, 5), CUTOFF) == AttendanceStatus.present


def test_naive_timestamp_treated_as_utc():
    assert AttendanceService.derive_status(datetime(2024, 1, 15, 10, 0), CUTOFF) == AttendanceStatus.late


def test_status_uses_local_timezone(monkeypatch):
    monkeypatch.setattr(settings, "TIMEZONE", "Asia/Kolkata")

    # 03:30 UTC is 09:00 IST, 04:30 UTC is 10:00 IST
    assert AttendanceService.derive_status(_utc(2024, 1, 15, 3, 30), CUTOFF) == AttendanceStatus.present
    assert AttendanceService.derive_status(_utc(2024, 1, 15, 4, 30), CUTOFF) == AttendanceStatus.late


@pytest.mark.parametrize("raw", ["9.30", "25:00", "", "noon"])
def test_parse_cutoff_rejects_bad_values(raw):
    with pytest.raises(ValidationException):
        AttendanceService.parse_cutoff(raw)


def test_parse_cutoff_accepts_hhmm():
    assert AttendanceService.parse_cutoff("08:45") == time(8, 45)


# ═════════════════════════════════════════════════════════════════════
# 2. CHECK-IN / CHECK-OUT — Service Layer
# ═════════════════════════════════════════════════════════════════════


async def test_check_in_creates_record(db, employee):
    resp = await AttendanceService.check_in(
        db, viewer_for(employee), at=_utc(2024, 1, 15, 9, 0), location={"label": "HQ"},
    )

    assert resp.date == date(2024, 1, 15)
    assert resp.status == AttendanceStatus.present
    assert resp.location == {"label": "HQ"}
    assert resp.company_id == employee.company_id


async def test_repeated_check_in_updates_same_row(db, employee):
    viewer = viewer_for(employee)
    first = await AttendanceService.check_in(db, viewer, at=_utc(2024, 1, 15, 9, 0))
    second = await AttendanceService.check_in(db, viewer, at=_utc(2024, 1, 15, 10, 15), notes="again")

    assert second.id == first.id
    assert second.status == AttendanceStatus.late
    assert second.notes == "again"
    assert await _row_count(db, employee.id) == 1


async def test_check_in_settles_pending_backdated_row(db, employee):
    viewer = viewer_for(employee)
    pending = await AttendanceService.request_backdated(
        db, viewer,
        BackdatedAttendanceRequest(date=date(2024, 1, 15), status=AttendanceStatus.absent, reason="Sick morning"),
    )

    resp = await AttendanceService.check_in(db, viewer, at=_utc(2024, 1, 15, 9, 10))

    assert resp.id == pending.id
    assert resp.status == AttendanceStatus.present
    assert resp.pending_approval is False
    assert resp.requestor_role is None
    assert await _row_count(db, employee.id) == 1


async def test_check_in_on_new_day_creates_new_row(db, employee):
    viewer = viewer_for(employee)
    await AttendanceService.check_in(db, viewer, at=_utc(2024, 1, 15, 9, 0))
    await AttendanceService.check_in(db, viewer, at=_utc(2024, 1, 16, 9, 0))

    assert await _row_count(db, employee.id) == 2


async def test_check_out_requires_check_in(db, employee):
    with pytest.raises(ValidationException) as exc:
        await AttendanceService.check_out(db, viewer_for(employee), at=_utc(2024, 1, 15, 18, 0))
    assert exc.value.detail == "You need to check in first."


async def test_check_out_stamps_time(db, employee):
    viewer = viewer_for(employee)
    await AttendanceService.check_in(db, viewer, at=_utc(2024, 1, 15, 9, 0))
    resp = await AttendanceService.check_out(db, viewer, at=_utc(2024, 1, 15, 18, 0))

    assert resp.check_out_time is not None
    assert resp.status == AttendanceStatus.present


async def test_recent_is_newest_first_and_limited(db, employee):
    viewer = viewer_for(employee)
    for day in range(1, 6):
        await AttendanceService.check_in(db, viewer, at=_utc(2024, 2, day, 9, 0))

    recent = await AttendanceService.get_recent(db, viewer, limit=3)
    assert [r.date.day for r in recent] == [5, 4, 3]


# ═════════════════════════════════════════════════════════════════════
# 3. CHECK-IN / TODAY — HTTP API
# ═════════════════════════════════════════════════════════════════════


async def test_today_is_null_before_check_in(client, db, employee):
    headers = await auth_headers_for(db, employee)
    resp = await client.get("/api/v1/attendance/today", headers=headers)

    assert resp.status_code == 200
    assert resp.json() is None


async def test_check_in_then_today(client, db, employee):
    headers = await auth_headers_for(db, employee)

    checked = await client.post("/api/v1/attendance/check-in", json={"notes": "office"}, headers=headers)
    assert checked.status_code == 200
    assert checked.json()["date"] == local_today().isoformat()

    again = await client.post("/api/v1/attendance/check-in", json={}, headers=headers)
    assert again.json()["id"] == checked.json()["id"]

    today = await client.get("/api/v1/attendance/today", headers=headers)
    assert today.json()["id"] == checked.json()["id"]


async def test_check_out_before_check_in_http(client, db, employee):
    headers = await auth_headers_for(db, employee)
    resp = await client.post("/api/v1/attendance/check-out", json={}, headers=headers)

    assert resp.status_code == 422
    assert resp.json()["detail"] == "You need to check in first."


# ═════════════════════════════════════════════════════════════════════
# 4. MANUAL OVERRIDE
# ═════════════════════════════════════════════════════════════════════


async def test_mark_absent_clears_times(db, admin, employee):
    await AttendanceService.check_in(db, viewer_for(employee), at=_utc(2024, 3, 4, 9, 0))

    resp = await AttendanceService.mark_attendance(
        db, viewer_for(admin),
        MarkAttendanceRequest(
            employee_id=employee.id, date=date(2024, 3, 4),
            status=AttendanceStatus.absent, reason="Left without notice",
        ),
    )

    assert resp.status == AttendanceStatus.absent
    assert resp.check_in_time is None
    assert resp.check_out_time is None
    assert resp.change_reason == "Left without notice"
    assert resp.updated_by == admin.id
    assert await _row_count(db, employee.id) == 1


async def test_mark_present_creates_row_with_check_in(db, admin, employee):
    resp = await AttendanceService.mark_attendance(
        db, viewer_for(admin),
        MarkAttendanceRequest(
            employee_id=employee.id, date=date(2024, 3, 5),
            status=AttendanceStatus.half_day, reason="Worked the morning",
        ),
    )

    assert resp.status == AttendanceStatus.half_day
    assert resp.check_in_time is not None
    assert resp.pending_approval is False

    audit = (await db.execute(
        select(AuditTrail).where(AuditTrail.entity_id == resp.id)
    )).scalars().one()
    assert audit.action == "mark"
    assert audit.new_values["status"] == "half_day"


async def test_admin_cannot_mark_super_admin(db, admin, super_admin):
    with pytest.raises(ForbiddenException):
        await AttendanceService.mark_attendance(
            db, viewer_for(admin),
            MarkAttendanceRequest(
                employee_id=super_admin.id, date=date(2024, 3, 4),
                status=AttendanceStatus.present, reason="x",
            ),
        )


async def test_admin_cannot_mark_self(db, admin):
    with pytest.raises(ForbiddenException):
        await AttendanceService.mark_attendance(
            db, viewer_for(admin),
            MarkAttendanceRequest(
                employee_id=admin.id, date=date(2024, 3, 4),
                status=AttendanceStatus.present, reason="x",
            ),
        )


async def test_super_admin_can_mark_admin(db, admin, super_admin):
    resp = await AttendanceService.mark_attendance(
        db, viewer_for(super_admin),
        MarkAttendanceRequest(
            employee_id=admin.id, date=date(2024, 3, 4),
            status=AttendanceStatus.late, reason="Traffic",
        ),
    )
    assert resp.status == AttendanceStatus.late


async def test_employee_cannot_mark_via_api(client, db, employee, team_member):
    headers = await auth_headers_for(db, employee)
    resp = await client.post(
        "/api/v1/attendance/mark",
        json={
            "employee_id": str(team_member.id),
            "date": "2024-03-04",
            "status": "present",
            "reason": "x",
        },
        headers=headers,
    )
    assert resp.status_code == 403


# ═════════════════════════════════════════════════════════════════════
# 5. BACKDATED REQUESTS
# ═════════════════════════════════════════════════════════════════════


async def test_backdated_request_is_pending(db, employee):
    resp = await AttendanceService.request_backdated(
        db, viewer_for(employee),
        BackdatedAttendanceRequest(date=date(2024, 1, 10), status=AttendanceStatus.present, reason="Forgot"),
    )

    assert resp.pending_approval is True
    assert resp.requestor_role == UserRole.employee
    assert resp.employee_id == employee.id


async def test_backdated_request_rejects_future_date(db, employee):
    with pytest.raises(ValidationException):
        await AttendanceService.request_backdated(
            db, viewer_for(employee),
            BackdatedAttendanceRequest(
                date=local_today() + timedelta(days=1),
                status=AttendanceStatus.present,
                reason="Time travel",
            ),
        )


async def test_employee_cannot_backdate_for_colleague(db, employee, team_member):
    with pytest.raises(ForbiddenException):
        await AttendanceService.request_backdated(
            db, viewer_for(employee),
            BackdatedAttendanceRequest(
                employee_id=team_member.id, date=date(2024, 1, 10),
                status=AttendanceStatus.present, reason="Covering",
            ),
        )


async def test_backdated_over_confirmed_row_conflicts(db, employee):
    viewer = viewer_for(employee)
    await AttendanceService.check_in(db, viewer, at=_utc(2024, 1, 10, 9, 0))

    with pytest.raises(ConflictError):
        await AttendanceService.request_backdated(
            db, viewer,
            BackdatedAttendanceRequest(date=date(2024, 1, 10), status=AttendanceStatus.present, reason="Dup"),
        )


async def test_approve_backdated_clears_flag(db, admin, employee):
    pending = await AttendanceService.request_backdated(
        db, viewer_for(employee),
        BackdatedAttendanceRequest(date=date(2024, 1, 10), status=AttendanceStatus.present, reason="Forgot"),
    )

    queue = await AttendanceService.list_pending(db, viewer_for(admin))
    assert [r.id for r in queue] == [pending.id]

    approved = await AttendanceService.approve_pending(db, viewer_for(admin), pending.id)
    assert approved.pending_approval is False
    assert await AttendanceService.list_pending(db, viewer_for(admin)) == []


async def test_reject_backdated_deletes_row(client, db, admin, employee):
    pending = await AttendanceService.request_backdated(
        db, viewer_for(employee),
        BackdatedAttendanceRequest(date=date(2024, 1, 11), status=AttendanceStatus.late, reason="Bus"),
    )
    await db.commit()

    resp = await client.post(
        f"/api/v1/attendance/{pending.id}/reject", headers=await auth_headers_for(db, admin),
    )
    assert resp.status_code == 204

    async with TestSessionFactory() as session:
        assert await session.get(AttendanceRecord, pending.id) is None


async def test_approving_confirmed_row_fails(db, admin, employee):
    record = await AttendanceService.check_in(db, viewer_for(employee), at=_utc(2024, 1, 12, 9, 0))
    with pytest.raises(ValidationException):
        await AttendanceService.approve_pending(db, viewer_for(admin), record.id)


# ═════════════════════════════════════════════════════════════════════
# 6. HOLIDAYS
# ═════════════════════════════════════════════════════════════════════


async def test_recurring_holiday_projected_onto_year(db, admin, employee):
    admin_viewer = viewer_for(admin)
    await HolidayService.create_holiday(
        db, admin_viewer, HolidayCreate(name="Christmas", date=date(2020, 12, 25), is_recurring=True),
    )
    await HolidayService.create_holiday(
        db, admin_viewer, HolidayCreate(name="Company Day", date=date(2023, 6, 1)),
    )
    await HolidayService.create_holiday(
        db, admin_viewer, HolidayCreate(name="Founders Day", date=date(2024, 3, 1)),
    )

    holidays = await HolidayService.list_holidays(db, viewer_for(employee), 2024)
    assert [(h.name, h.date) for h in holidays] == [
        ("Founders Day", date(2024, 3, 1)),
        ("Christmas", date(2024, 12, 25)),
    ]


async def test_leap_day_holiday_falls_back_to_feb_28(db, admin):
    await HolidayService.create_holiday(
        db, viewer_for(admin), HolidayCreate(name="Leap", date=date(2024, 2, 29), is_recurring=True),
    )
    holidays = await HolidayService.list_holidays(db, viewer_for(admin), 2025)
    assert holidays[0].date == date(2025, 2, 28)


async def test_duplicate_holiday_conflicts(db, admin):
    data = HolidayCreate(name="New Year", date=date(2024, 1, 1))
    await HolidayService.create_holiday(db, viewer_for(admin), data)
    with pytest.raises(ConflictError):
        await HolidayService.create_holiday(db, viewer_for(admin), data)


async def test_holiday_crud_via_api(client, db, admin, employee):
    admin_headers = await auth_headers_for(db, admin)

    created = await client.post(
        "/api/v1/holidays",
        json={"name": "Diwali", "date": "2024-11-01", "description": "Festival"},
        headers=admin_headers,
    )
    assert created.status_code == 201
    holiday_id = created.json()["id"]

    updated = await client.patch(
        f"/api/v1/holidays/{holiday_id}", json={"date": "2024-10-31"}, headers=admin_headers,
    )
    assert updated.json()["date"] == "2024-10-31"

    denied = await client.delete(
        f"/api/v1/holidays/{holiday_id}", headers=await auth_headers_for(db, employee),
    )
    assert denied.status_code == 403

    deleted = await client.delete(f"/api/v1/holidays/{holiday_id}", headers=admin_headers)
    assert deleted.status_code == 204
    async with TestSessionFactory() as session:
        remaining = (await session.execute(select(Holiday))).scalars().all()
    assert remaining == []


# ═════════════════════════════════════════════════════════════════════
# 7. LATE CUTOFF SETTING
# ═════════════════════════════════════════════════════════════════════


async def test_default_late_mark_time(client, db, employee):
    resp = await client.get("/api/v1/settings/late-mark-time", headers=await auth_headers_for(db, employee))
    assert resp.json() == {"late_mark_time": settings.DEFAULT_LATE_MARK_TIME}


async def test_updated_cutoff_changes_status(db, admin, employee):
    await AttendanceService.update_late_mark_time(db, viewer_for(admin), "10:00")

    resp = await AttendanceService.check_in(db, viewer_for(employee), at=_utc(2024, 1, 15, 9, 45))
    assert resp.status == AttendanceStatus.present


async def test_employee_cannot_change_cutoff(client, db, employee):
    resp = await client.put(
        "/api/v1/settings/late-mark-time",
        json={"late_mark_time": "10:00"},
        headers=await auth_headers_for(db, employee),
    )
    assert resp.status_code == 403


async def test_invalid_cutoff_rejected(client, db, admin):
    resp = await client.put(
        "/api/v1/settings/late-mark-time",
        json={"late_mark_time": "9am"},
        headers=await auth_headers_for(db, admin),
    )
    assert resp.status_code == 422
