"""Auth Pydantic schemas for request / response validation."""


import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# ── Requests ────────────────────────────────────────────────────────

class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class SignUpRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)


class RefreshRequest(BaseModel):
    refresh_token: str


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    token: str
    new_password: str = Field(..., min_length=8, max_length=128)


class DemoLoginRequest(BaseModel):
    email: EmailStr


# ── Embedded / Shared ──────────────────────────────────────────────

class UserInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    name: str
    role: str
    company_id: uuid.UUID
    department: Optional[str] = None
    position: Optional[str] = None


# ── Responses ───────────────────────────────────────────────────────

class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserInfo


class RefreshResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class PasswordResetResponse(BaseModel):
    message: str
    # Only populated outside production; delivery is handled out of band.
    reset_token: Optional[str] = None


class MeResponse(BaseModel):
    id: uuid.UUID
    email: str
    name: str
    role: str
    permissions: list[str]
    company_id: uuid.UUID
    company_name: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    reporting_manager_id: Optional[uuid.UUID] = None
    team_id: Optional[uuid.UUID] = None
    direct_reports_count: int
