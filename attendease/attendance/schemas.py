"""Attendance Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Request / *Create / *Update → request bodies (write)
  - *Response                    → response bodies (read)
"""


import re
import uuid
from datetime import date, datetime
from datetime import date as date_type
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from attendease.common.constants import AttendanceStatus, UserRole
from attendease.core_hr.schemas import EmployeeBrief

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


# ═════════════════════════════════════════════════════════════════════
# Check in / out
# ═════════════════════════════════════════════════════════════════════


class CheckInRequest(BaseModel):
    """Payload for checking in; ``location`` is free-form (lat/lng, label)."""

    location: Optional[dict[str, Any]] = None
    notes: Optional[str] = Field(None, max_length=1000)


class CheckOutRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)


# ═════════════════════════════════════════════════════════════════════
# Attendance record
# ═════════════════════════════════════════════════════════════════════


class AttendanceResponse(BaseModel):
    """Single attendance row for one employee and day."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    employee_id: uuid.UUID
    date: date
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    status: AttendanceStatus
    notes: Optional[str] = None
    location: Optional[dict[str, Any]] = None
    pending_approval: bool = False
    requestor_role: Optional[UserRole] = None
    change_reason: Optional[str] = None
    updated_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime


class AttendanceWithEmployee(AttendanceResponse):
    """Attendance row with the employee embedded (team / admin views)."""

    employee: Optional[EmployeeBrief] = None


# ═════════════════════════════════════════════════════════════════════
# Manual override / backdated requests
# ═════════════════════════════════════════════════════════════════════


class MarkAttendanceRequest(BaseModel):
    """Admin override for one employee and date."""

    employee_id: uuid.UUID
    date: date
    status: AttendanceStatus
    reason: str = Field(..., min_length=1, max_length=1000)


class BackdatedAttendanceRequest(BaseModel):
    """Request to record attendance for a past date; needs admin approval."""

    employee_id: Optional[uuid.UUID] = None
    date: date
    status: AttendanceStatus
    reason: str = Field(..., min_length=1, max_length=1000)


# ═════════════════════════════════════════════════════════════════════
# Holidays
# ═════════════════════════════════════════════════════════════════════


class HolidayCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    date: date
    description: Optional[str] = None
    is_recurring: bool = False


class HolidayUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    date: Optional[date_type] = None
    description: Optional[str] = None
    is_recurring: Optional[bool] = None


class HolidayResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    name: str
    date: date
    description: Optional[str] = None
    is_recurring: bool = False


# ═════════════════════════════════════════════════════════════════════
# Settings
# ═════════════════════════════════════════════════════════════════════


class LateMarkTimeResponse(BaseModel):
    late_mark_time: str


class LateMarkTimeUpdate(BaseModel):
    late_mark_time: str

    @field_validator("late_mark_time")
    @classmethod
    def _check_format(cls, value: str) -> str:
        value = value.strip()
        if not _HHMM.match(value):
            raise ValueError("Must be a 24-hour time in HH:MM format.")
        return value
