"""Reports service — role-scoped aggregates over attendance and leave.

All methods are static async, following the project convention.
Rows are fetched with one scoped query per report; the reductions
themselves live in ``attendease.reports.metrics``.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.attendance.models import AttendanceRecord
from attendease.attendance.service import AttendanceService
from attendease.common.constants import ATTENDED_STATUSES, AttendanceStatus, LeaveStatus
from attendease.common.exceptions import ValidationException
from attendease.common.scoping import Viewer, apply_role_scope
from attendease.core_hr.models import Profile
from attendease.leave.models import LeaveRequest, LeaveType
from attendease.reports.metrics import (
    attendance_rate,
    bucket_leave_totals,
    date_range,
    percentage,
    summarize_attendance,
)
from attendease.reports.schemas import (
    AttendanceSummaryResponse,
    DailyAttendanceResponse,
    DailyAttendanceRow,
    DepartmentStats,
    DepartmentStatsResponse,
    LeaveSummaryResponse,
)

UNASSIGNED = "Unassigned"


def _resolve_window(
    period: str,
    today: date,
    start_date: Optional[date],
    end_date: Optional[date],
) -> tuple[date, date]:
    """Explicit dates win over the trailing *period* window."""
    start, end = date_range(period, today)
    start = start_date or start
    end = end_date or end
    if end < start:
        raise ValidationException({"end_date": ["end_date must be on or after start_date."]})
    return start, end


class ReportService:
    """Async report aggregation queries."""

    # ── Attendance summary ──────────────────────────────────────────

    @staticmethod
    async def attendance_summary(
        db: AsyncSession,
        viewer: Viewer,
        *,
        period: str,
        today: date,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        department: Optional[str] = None,
    ) -> AttendanceSummaryResponse:
        start, end = _resolve_window(period, today, start_date, end_date)
        query = (
            select(AttendanceRecord.status)
            .join(Profile, Profile.id == AttendanceRecord.employee_id)
            .where(AttendanceRecord.date >= start, AttendanceRecord.date <= end)
        )
        query = apply_role_scope(
            query, viewer,
            employee_column=AttendanceRecord.employee_id,
            company_column=AttendanceRecord.company_id,
        )
        if department:
            query = query.where(Profile.department == department)

        summary = summarize_attendance((await db.execute(query)).scalars().all())
        return AttendanceSummaryResponse(
            start_date=start,
            end_date=end,
            present=summary.present,
            late=summary.late,
            absent=summary.absent,
            half_day=summary.half_day,
            total=summary.total,
            attendance_rate=summary.rate,
        )

    # ── Leave summary ───────────────────────────────────────────────

    @staticmethod
    async def leave_summary(
        db: AsyncSession,
        viewer: Viewer,
        *,
        period: str,
        today: date,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        department: Optional[str] = None,
    ) -> LeaveSummaryResponse:
        """Approved leave requests by type inside the window."""
        start, end = _resolve_window(period, today, start_date, end_date)
        query = (
            select(LeaveType.name, LeaveRequest.status, LeaveRequest.total_days)
            .select_from(LeaveRequest)
            .join(Profile, Profile.id == LeaveRequest.employee_id)
            .outerjoin(LeaveType, LeaveType.id == LeaveRequest.leave_type_id)
            .where(LeaveRequest.start_date >= start, LeaveRequest.end_date <= end)
        )
        query = apply_role_scope(
            query, viewer,
            employee_column=LeaveRequest.employee_id,
            company_column=LeaveRequest.company_id,
        )
        if department:
            query = query.where(Profile.department == department)

        totals = bucket_leave_totals((await db.execute(query)).all())
        return LeaveSummaryResponse(
            start_date=start,
            end_date=end,
            annual=totals.annual,
            sick=totals.sick,
            personal=totals.personal,
            other=totals.other,
            total=totals.total,
            total_days=totals.days,
        )

    # ── Department stats ────────────────────────────────────────────

    @staticmethod
    async def department_stats(
        db: AsyncSession,
        viewer: Viewer,
        *,
        period: str,
        today: date,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> DepartmentStatsResponse:
        """Attendance and leave rates per department.

        Both rates use the department's attendance-row count as denominator.
        """
        start, end = _resolve_window(period, today, start_date, end_date)

        att_query = (
            select(Profile.department, AttendanceRecord.status)
            .join(Profile, Profile.id == AttendanceRecord.employee_id)
            .where(
                AttendanceRecord.date >= start,
                AttendanceRecord.date <= end,
                Profile.department.is_not(None),
            )
        )
        att_query = apply_role_scope(
            att_query, viewer,
            employee_column=AttendanceRecord.employee_id,
            company_column=AttendanceRecord.company_id,
        )

        leave_query = (
            select(Profile.department)
            .select_from(LeaveRequest)
            .join(Profile, Profile.id == LeaveRequest.employee_id)
            .where(
                LeaveRequest.status == LeaveStatus.approved,
                LeaveRequest.start_date >= start,
                LeaveRequest.end_date <= end,
                Profile.department.is_not(None),
            )
        )
        leave_query = apply_role_scope(
            leave_query, viewer,
            employee_column=LeaveRequest.employee_id,
            company_column=LeaveRequest.company_id,
        )

        dept_query = select(Profile.department).where(Profile.department.is_not(None)).distinct()
        dept_query = apply_role_scope(
            dept_query, viewer,
            employee_column=Profile.id,
            company_column=Profile.company_id,
        )

        totals: dict[str, int] = defaultdict(int)
        present: dict[str, int] = defaultdict(int)
        for dept, status in (await db.execute(att_query)).all():
            totals[dept] += 1
            if status in ATTENDED_STATUSES:
                present[dept] += 1

        approved: dict[str, int] = defaultdict(int)
        for dept in (await db.execute(leave_query)).scalars().all():
            approved[dept] += 1

        departments = sorted(set((await db.execute(dept_query)).scalars().all()))
        return DepartmentStatsResponse(
            start_date=start,
            end_date=end,
            departments=[
                DepartmentStats(
                    department=dept,
                    total_records=totals[dept],
                    present=present[dept],
                    approved_leaves=approved[dept],
                    attendance_rate=round(percentage(present[dept], totals[dept]), 2),
                    leave_rate=round(percentage(approved[dept], totals[dept]), 2),
                )
                for dept in departments
            ],
        )

    # ── Daily attendance ────────────────────────────────────────────

    @staticmethod
    async def daily_attendance(
        db: AsyncSession,
        viewer: Viewer,
        *,
        day: date,
        department: Optional[str] = None,
    ) -> DailyAttendanceResponse:
        """Status of every active employee in scope on *day*.

        Approved leave wins over a check-in; without either the employee
        counts as absent.
        """
        late_mark_time = await AttendanceService.get_late_mark_time(db)
        cutoff = AttendanceService.parse_cutoff(late_mark_time)

        emp_query = select(Profile).where(Profile.is_active.is_(True)).order_by(Profile.name)
        emp_query = apply_role_scope(
            emp_query, viewer,
            employee_column=Profile.id,
            company_column=Profile.company_id,
        )
        if department:
            emp_query = emp_query.where(Profile.department == department)
        employees = (await db.execute(emp_query)).scalars().all()
        employee_ids = [e.id for e in employees]

        attendance: dict = {}
        leaves: dict = {}
        if employee_ids:
            att_result = await db.execute(
                select(AttendanceRecord).where(
                    AttendanceRecord.employee_id.in_(employee_ids),
                    AttendanceRecord.date == day,
                )
            )
            attendance = {r.employee_id: r for r in att_result.scalars().all()}

            leave_result = await db.execute(
                select(LeaveRequest.employee_id, LeaveType.name)
                .outerjoin(LeaveType, LeaveType.id == LeaveRequest.leave_type_id)
                .where(
                    LeaveRequest.employee_id.in_(employee_ids),
                    LeaveRequest.status == LeaveStatus.approved,
                    LeaveRequest.start_date <= day,
                    LeaveRequest.end_date >= day,
                )
            )
            for employee_id, leave_type in leave_result.all():
                leaves.setdefault(employee_id, leave_type)

        rows: list[DailyAttendanceRow] = []
        for employee in employees:
            record = attendance.get(employee.id)
            check_in = record.check_in_time if record else None
            if employee.id in leaves:
                status = "leave"
            elif check_in is not None:
                status = AttendanceService.derive_status(check_in, cutoff).value
            else:
                status = AttendanceStatus.absent.value
            rows.append(
                DailyAttendanceRow(
                    employee_id=employee.id,
                    name=employee.name,
                    department=employee.department or UNASSIGNED,
                    status=status,
                    leave_type=leaves.get(employee.id),
                    check_in_time=check_in,
                    check_out_time=record.check_out_time if record else None,
                )
            )

        late = sum(1 for r in rows if r.status == "late")
        present = sum(1 for r in rows if r.status == "present") + late
        return DailyAttendanceResponse(
            date=day,
            late_mark_time=late_mark_time,
            present=present,
            late=late,
            absent=sum(1 for r in rows if r.status == "absent"),
            on_leave=sum(1 for r in rows if r.status == "leave"),
            total=len(rows),
            attendance_rate=attendance_rate(present, len(rows)),
            records=rows,
        )
