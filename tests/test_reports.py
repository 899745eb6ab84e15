"""Reports test suite — metric reductions, trailing windows, scoped aggregates."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

import pytest

from attendease.attendance.models import AttendanceRecord
from attendease.common.constants import AttendanceStatus, LeaveStatus
from attendease.common.exceptions import ValidationException
from attendease.leave.models import LeaveRequest, LeaveType
from attendease.reports.metrics import (
    attendance_rate,
    bucket_leave_totals,
    date_range,
    percentage,
    summarize_attendance,
)
from attendease.reports.service import ReportService
from tests.conftest import auth_headers_for, make_company, make_profile, viewer_for

TODAY = date(2024, 3, 15)


async def _attendance(db, profile, day: date, status: AttendanceStatus, check_in: Optional[datetime] = None):
    db.add(
        AttendanceRecord(
            company_id=profile.company_id,
            employee_id=profile.id,
            date=day,
            status=status,
            check_in_time=check_in,
        )
    )
    await db.commit()


async def _leave_type(db, company, name: str) -> LeaveType:
    lt = LeaveType(company_id=company.id, name=name)
    db.add(lt)
    await db.commit()
    return lt


async def _leave(db, profile, start: date, end: date, *, leave_type=None, status=LeaveStatus.approved):
    db.add(
        LeaveRequest(
            company_id=profile.company_id,
            employee_id=profile.id,
            leave_type_id=leave_type.id if leave_type else None,
            start_date=start,
            end_date=end,
            total_days=(end - start).days + 1,
            status=status,
        )
    )
    await db.commit()


# ── Metrics ─────────────────────────────────────────────────────────


class TestMetrics:
    def test_rate_with_no_rows_is_zero(self):
        assert attendance_rate(0, 0) == 0
        assert percentage(3, 0) == 0.0

    @pytest.mark.parametrize(
        "present,total,expected",
        [(1, 3, 33), (2, 3, 67), (1, 8, 13), (4, 4, 100)],
    )
    def test_rate_rounds_half_up(self, present, total, expected):
        assert attendance_rate(present, total) == expected

    def test_summarize_counts_late_as_present(self):
        summary = summarize_attendance([
            AttendanceStatus.present,
            AttendanceStatus.late,
            AttendanceStatus.absent,
            AttendanceStatus.half_day,
        ])

        assert (summary.present, summary.late, summary.absent, summary.half_day) == (2, 1, 1, 1)
        assert summary.total == 4
        assert summary.rate == 50

    def test_bucket_leave_totals(self):
        totals = bucket_leave_totals([
            ("Annual Leave", LeaveStatus.approved, 3),
            ("Sick Leave", LeaveStatus.pending, 2),
            ("Personal Leave", LeaveStatus.approved, 1),
            ("Comp Off", LeaveStatus.approved, 2),
            (None, LeaveStatus.approved, 1),
            ("Annual Leave", LeaveStatus.rejected, 4),
        ])

        assert (totals.annual, totals.sick, totals.personal, totals.other) == (1, 0, 1, 2)
        assert totals.total == 4
        assert totals.days == 7

    def test_bucket_counts_requests_not_days(self):
        totals = bucket_leave_totals([
            ("Annual Leave", LeaveStatus.approved, 3),
            ("Annual Leave", LeaveStatus.approved, 5),
        ])

        assert totals.annual == 2
        assert totals.total == 2
        assert totals.days == 8


class TestDateRange:
    def test_week_is_seven_days_back(self):
        assert date_range("week", TODAY) == (date(2024, 3, 8), TODAY)

    def test_month_clamps_to_month_end(self):
        assert date_range("month", date(2024, 3, 31)) == (date(2024, 2, 29), date(2024, 3, 31))

    def test_quarter_crosses_year(self):
        assert date_range("quarter", date(2024, 2, 10)) == (date(2023, 11, 10), date(2024, 2, 10))

    def test_year_from_leap_day(self):
        assert date_range("year", date(2024, 2, 29)) == (date(2023, 2, 28), date(2024, 2, 29))

    def test_unknown_period(self):
        with pytest.raises(ValidationException) as exc:
            date_range("decade", TODAY)
        assert "period" in exc.value.errors


# ── Attendance summary ──────────────────────────────────────────────


@pytest.fixture
async def week_of_attendance(db, employee, team_member):
    await _attendance(db, employee, date(2024, 3, 14), AttendanceStatus.present)
    await _attendance(db, employee, date(2024, 3, 13), AttendanceStatus.late)
    await _attendance(db, employee, date(2024, 3, 12), AttendanceStatus.absent)
    await _attendance(db, employee, date(2024, 3, 1), AttendanceStatus.present)
    await _attendance(db, team_member, date(2024, 3, 14), AttendanceStatus.present)

    other = await make_company(db, name="Globex", domain="globex.io")
    outsider = await make_profile(db, other)
    await _attendance(db, outsider, date(2024, 3, 14), AttendanceStatus.present)


async def test_attendance_summary_admin_sees_company(db, admin, week_of_attendance):
    result = await ReportService.attendance_summary(db, viewer_for(admin), period="week", today=TODAY)

    assert (result.start_date, result.end_date) == (date(2024, 3, 8), TODAY)
    assert result.total == 4
    assert result.present == 3
    assert result.late == 1
    assert result.absent == 1
    assert result.attendance_rate == 75


async def test_attendance_summary_employee_sees_own(db, employee, week_of_attendance):
    result = await ReportService.attendance_summary(db, viewer_for(employee), period="week", today=TODAY)

    assert result.total == 3
    assert result.attendance_rate == 67


async def test_attendance_summary_manager_sees_team(db, manager, week_of_attendance):
    result = await ReportService.attendance_summary(db, viewer_for(manager), period="week", today=TODAY)

    assert result.total == 1
    assert result.attendance_rate == 100


async def test_attendance_summary_super_admin_all_companies(db, super_admin, week_of_attendance):
    result = await ReportService.attendance_summary(db, viewer_for(super_admin), period="week", today=TODAY)
    assert result.total == 5


async def test_attendance_summary_explicit_dates_and_department(db, company, admin, week_of_attendance):
    seller = await make_profile(db, company, department="Sales")
    await _attendance(db, seller, date(2024, 3, 1), AttendanceStatus.absent)

    result = await ReportService.attendance_summary(
        db, viewer_for(admin), period="week", today=TODAY,
        start_date=date(2024, 3, 1), end_date=date(2024, 3, 1), department="Sales",
    )

    assert result.total == 1
    assert result.absent == 1
    assert result.attendance_rate == 0


async def test_report_window_end_before_start(db, admin):
    with pytest.raises(ValidationException):
        await ReportService.attendance_summary(
            db, viewer_for(admin), period="month", today=TODAY,
            start_date=date(2024, 3, 10), end_date=date(2024, 3, 1),
        )


# ── Leave summary ───────────────────────────────────────────────────


async def test_leave_summary_counts_approved_requests(db, company, admin, employee, team_member):
    annual = await _leave_type(db, company, "Annual Leave")
    sick = await _leave_type(db, company, "Sick Leave")
    bereavement = await _leave_type(db, company, "Bereavement")

    await _leave(db, employee, date(2024, 3, 4), date(2024, 3, 6), leave_type=annual)
    await _leave(db, team_member, date(2024, 3, 11), date(2024, 3, 11), leave_type=sick)
    await _leave(db, employee, date(2024, 2, 20), date(2024, 2, 21), leave_type=bereavement)
    await _leave(db, team_member, date(2024, 3, 1), date(2024, 3, 1))
    await _leave(db, employee, date(2024, 3, 12), date(2024, 3, 14), leave_type=annual, status=LeaveStatus.pending)
    await _leave(db, employee, date(2023, 12, 1), date(2023, 12, 5), leave_type=annual)

    result = await ReportService.leave_summary(db, viewer_for(admin), period="month", today=TODAY)

    assert (result.annual, result.sick, result.personal, result.other) == (1, 1, 0, 2)
    assert result.total == 4
    assert result.total_days == 7


async def test_leave_summary_employee_scope(db, company, employee, team_member):
    annual = await _leave_type(db, company, "Annual Leave")
    await _leave(db, employee, date(2024, 3, 4), date(2024, 3, 5), leave_type=annual)
    await _leave(db, team_member, date(2024, 3, 4), date(2024, 3, 4), leave_type=annual)

    result = await ReportService.leave_summary(db, viewer_for(employee), period="month", today=TODAY)

    assert result.annual == 1
    assert result.total_days == 2


# ── Department stats ────────────────────────────────────────────────


async def test_department_stats(db, company, admin, employee, team_member):
    seller = await make_profile(db, company, department="Sales")
    await make_profile(db, company, department="Finance")
    await _attendance(db, employee, date(2024, 3, 14), AttendanceStatus.present)
    await _attendance(db, employee, date(2024, 3, 13), AttendanceStatus.late)
    await _attendance(db, employee, date(2024, 3, 12), AttendanceStatus.absent)
    await _attendance(db, team_member, date(2024, 3, 14), AttendanceStatus.present)
    await _attendance(db, seller, date(2024, 3, 14), AttendanceStatus.absent)
    await _leave(db, employee, date(2024, 3, 10), date(2024, 3, 10))

    result = await ReportService.department_stats(db, viewer_for(admin), period="week", today=TODAY)

    by_name = {d.department: d for d in result.departments}
    assert sorted(by_name) == ["Engineering", "Finance", "Sales"]

    eng = by_name["Engineering"]
    assert (eng.total_records, eng.present, eng.approved_leaves) == (4, 3, 1)
    assert eng.attendance_rate == 75.0
    assert eng.leave_rate == 25.0

    assert by_name["Sales"].attendance_rate == 0.0
    assert by_name["Finance"].total_records == 0
    assert by_name["Finance"].leave_rate == 0.0


# ── Daily attendance ────────────────────────────────────────────────


@pytest.fixture
async def busy_day(db, company, admin, employee, manager, team_member):
    sick = await _leave_type(db, company, "Sick Leave")
    await make_profile(db, company, name="Nora Nodept", department=None)
    await _attendance(
        db, employee, TODAY, AttendanceStatus.present,
        check_in=datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc),
    )
    await _attendance(
        db, manager, TODAY, AttendanceStatus.present,
        check_in=datetime(2024, 3, 15, 10, 0, tzinfo=timezone.utc),
    )
    await _attendance(
        db, team_member, TODAY, AttendanceStatus.present,
        check_in=datetime(2024, 3, 15, 8, 55, tzinfo=timezone.utc),
    )
    await _leave(db, team_member, date(2024, 3, 14), date(2024, 3, 15), leave_type=sick)
    await make_profile(db, company, name="Zed Former", is_active=False)


async def test_daily_attendance_precedence(db, admin, busy_day):
    result = await ReportService.daily_attendance(db, viewer_for(admin), day=TODAY)

    rows = {r.name: r for r in result.records}
    assert list(rows) == ["Ada Employee", "Alan Admin", "Mia Manager", "Nora Nodept", "Rita Report"]
    assert rows["Ada Employee"].status == "present"
    assert rows["Alan Admin"].status == "absent"
    assert rows["Mia Manager"].status == "late"
    assert rows["Nora Nodept"].department == "Unassigned"
    assert rows["Rita Report"].status == "leave"
    assert rows["Rita Report"].leave_type == "Sick Leave"

    assert result.late_mark_time == "09:30"
    assert (result.present, result.late, result.absent, result.on_leave) == (2, 1, 2, 1)
    assert result.total == 5
    assert result.attendance_rate == 40


async def test_daily_attendance_manager_scope(db, manager, busy_day):
    result = await ReportService.daily_attendance(db, viewer_for(manager), day=TODAY)

    assert [r.name for r in result.records] == ["Mia Manager", "Rita Report"]


async def test_daily_attendance_department_filter(db, admin, busy_day):
    result = await ReportService.daily_attendance(db, viewer_for(admin), day=TODAY, department="Engineering")
    assert "Nora Nodept" not in [r.name for r in result.records]


# ── HTTP ────────────────────────────────────────────────────────────


async def test_api_daily_report(client, db, admin, busy_day):
    resp = await client.get(
        "/api/v1/reports/daily", params={"date": TODAY.isoformat()}, headers=await auth_headers_for(db, admin),
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["date"] == "2024-03-15"
    assert data["total"] == 5
    assert data["on_leave"] == 1


async def test_api_summary_rejects_unknown_period(client, db, employee):
    resp = await client.get(
        "/api/v1/reports/attendance-summary", params={"period": "decade"},
        headers=await auth_headers_for(db, employee),
    )
    assert resp.status_code == 422


async def test_api_reports_require_auth(client):
    resp = await client.get("/api/v1/reports/departments")
    assert resp.status_code == 401


async def test_api_leave_summary_defaults_to_month(client, db, employee):
    resp = await client.get("/api/v1/reports/leave-summary", headers=await auth_headers_for(db, employee))

    assert resp.status_code == 200
    assert resp.json()["total"] == 0
