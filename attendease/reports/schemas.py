"""Report Pydantic v2 schemas — read-only aggregate responses."""


import uuid
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel


class AttendanceSummaryResponse(BaseModel):
    start_date: date
    end_date: date
    present: int = 0
    late: int = 0
    absent: int = 0
    half_day: int = 0
    total: int = 0
    attendance_rate: int = 0


class LeaveSummaryResponse(BaseModel):
    """Approved leave requests per standard leave type, plus their day total."""

    start_date: date
    end_date: date
    annual: int = 0
    sick: int = 0
    personal: int = 0
    other: int = 0
    total: int = 0
    total_days: int = 0


class DepartmentStats(BaseModel):
    department: str
    total_records: int = 0
    present: int = 0
    approved_leaves: int = 0
    attendance_rate: float = 0.0
    leave_rate: float = 0.0


class DepartmentStatsResponse(BaseModel):
    start_date: date
    end_date: date
    departments: list[DepartmentStats]


class DailyAttendanceRow(BaseModel):
    employee_id: uuid.UUID
    name: str
    department: str
    status: Literal["present", "late", "absent", "leave"]
    leave_type: Optional[str] = None
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None


class DailyAttendanceResponse(BaseModel):
    date: date
    late_mark_time: str
    present: int = 0
    late: int = 0
    absent: int = 0
    on_leave: int = 0
    total: int = 0
    attendance_rate: int = 0
    records: list[DailyAttendanceRow]
