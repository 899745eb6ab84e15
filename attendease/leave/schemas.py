"""Leave Pydantic v2 schemas — request / response validation."""


import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from attendease.common.constants import LeaveStatus
from attendease.core_hr.schemas import EmployeeBrief


# ═════════════════════════════════════════════════════════════════════
# Leave types
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str


class LeaveTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    max_days_per_year: Optional[int] = Field(None, ge=0, le=366)


class LeaveTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    max_days_per_year: Optional[int] = Field(None, ge=0, le=366)
    is_active: Optional[bool] = None


class LeaveTypeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    name: str
    description: Optional[str] = None
    max_days_per_year: Optional[int] = None
    is_active: bool = True


# ═════════════════════════════════════════════════════════════════════
# Leave requests
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for a regular leave application by the caller."""

    leave_type_id: uuid.UUID
    start_date: date
    end_date: date
    reason: Optional[str] = Field(None, max_length=2000)


class BackdatedLeaveCreate(BaseModel):
    """Leave already taken; filed after the fact and always reviewed."""

    employee_id: Optional[uuid.UUID] = None
    leave_type_id: Optional[uuid.UUID] = None
    start_date: date
    end_date: date
    reason: str = Field(..., min_length=1, max_length=2000)


class LeaveDecision(BaseModel):
    """Approve / reject body."""

    comments: Optional[str] = Field(None, max_length=2000)


class LeaveRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: Optional[uuid.UUID] = None
    start_date: date
    end_date: date
    total_days: int
    reason: Optional[str] = None
    status: LeaveStatus
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    admin_comments: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    employee: Optional[EmployeeBrief] = None
    leave_type: Optional[LeaveTypeBrief] = None


# ═════════════════════════════════════════════════════════════════════
# Balances
# ═════════════════════════════════════════════════════════════════════


class BalanceAllocate(BaseModel):
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int = Field(..., ge=1970, le=2100)
    allocated_days: int = Field(..., ge=0, le=366)


class LeaveBalanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    leave_type: Optional[LeaveTypeBrief] = None
    year: int
    allocated_days: int
    used_days: int
    remaining_days: int
