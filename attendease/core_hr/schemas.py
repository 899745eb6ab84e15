"""Core HR Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Update  → request bodies (write)
  - *Response          → response bodies (read)
  - *Brief             → compact read representations
"""


import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from attendease.common.constants import UserRole


# ═════════════════════════════════════════════════════════════════════
# Employee / Profile
# ═════════════════════════════════════════════════════════════════════


class EmployeeCreate(BaseModel):
    """Body of the privileged create-employee operation."""

    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    role: UserRole = UserRole.employee
    department: Optional[str] = Field(None, max_length=100)
    position: Optional[str] = Field(None, max_length=100)
    hire_date: Optional[date] = None
    reporting_manager_id: Optional[uuid.UUID] = None
    team_id: Optional[uuid.UUID] = None


class EmployeeUpdate(BaseModel):
    """Admin update; only provided fields are applied."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    role: Optional[UserRole] = None
    department: Optional[str] = Field(None, max_length=100)
    position: Optional[str] = Field(None, max_length=100)
    hire_date: Optional[date] = None
    reporting_manager_id: Optional[uuid.UUID] = None
    team_id: Optional[uuid.UUID] = None
    is_active: Optional[bool] = None


class ProfileUpdate(BaseModel):
    """Fields a user may change on their own profile."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    department: Optional[str] = Field(None, max_length=100)
    position: Optional[str] = Field(None, max_length=100)


class EmployeeBrief(BaseModel):
    """Minimal employee info embedded in other responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str
    department: Optional[str] = None


class EmployeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    email: str
    name: str
    role: UserRole
    department: Optional[str] = None
    position: Optional[str] = None
    hire_date: Optional[date] = None
    is_active: bool
    reporting_manager_id: Optional[uuid.UUID] = None
    team_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime


# ═════════════════════════════════════════════════════════════════════
# Team
# ═════════════════════════════════════════════════════════════════════


class TeamCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    manager_id: Optional[uuid.UUID] = None


class TeamUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    manager_id: Optional[uuid.UUID] = None
    is_active: Optional[bool] = None


class TeamMembersUpdate(BaseModel):
    employee_ids: list[uuid.UUID] = Field(default_factory=list)


class TeamResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    name: str
    description: Optional[str] = None
    manager_id: Optional[uuid.UUID] = None
    is_active: bool
    member_count: int = 0
    created_at: datetime
