"""Core HR router — employee, own-profile and team endpoints.

Routes:
    /employees                      — List (role-scoped), create (admin+)
    /employees/direct-reports       — Caller's direct reports
    /employees/{id}                 — Get, update, deactivate
    /profile/me                     — Read / update own profile
    /teams                          — List (scoped), create (admin+)
    /teams/{id}                     — Update, delete (admin+)
    /teams/{id}/members             — List members, replace membership
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.common.constants import UserRole
from attendease.common.pagination import PaginationParams
from attendease.common.scoping import Viewer
from attendease.companies.dependencies import get_viewer, require_viewer
from attendease.core_hr.schemas import (
    EmployeeCreate,
    EmployeeResponse,
    EmployeeUpdate,
    ProfileUpdate,
    TeamCreate,
    TeamMembersUpdate,
    TeamResponse,
    TeamUpdate,
)
from attendease.core_hr.service import EmployeeService, TeamService
from attendease.database import get_db


# ═════════════════════════════════════════════════════════════════════
# Routers
# ═════════════════════════════════════════════════════════════════════

employees_router = APIRouter(prefix="", tags=["employees"])
profile_router = APIRouter(prefix="", tags=["profile"])
teams_router = APIRouter(prefix="", tags=["teams"])

_admin_viewer = require_viewer(UserRole.admin)


# ═════════════════════════════════════════════════════════════════════
# Employee Endpoints
# ═════════════════════════════════════════════════════════════════════


# ── GET /employees ──────────────────────────────────────────────────

@employees_router.get("")
async def list_employees(
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
    pagination: PaginationParams = Depends(),
    search: Optional[str] = Query(None, description="Search by name, email or position"),
    department: Optional[str] = Query(None),
    role: Optional[UserRole] = Query(None),
    team_id: Optional[uuid.UUID] = Query(None),
    is_active: Optional[bool] = Query(True),
):
    """Employees visible to the caller: self, direct reports, or the company."""
    result = await EmployeeService.list_employees(
        db, viewer, pagination,
        search=search,
        department=department,
        role=role,
        team_id=team_id,
        is_active=is_active,
    )
    return {
        "data": [item.model_dump(mode="json") for item in result.data],
        "meta": result.meta.model_dump(),
    }


# ── POST /employees ─────────────────────────────────────────────────

@employees_router.post("", response_model=EmployeeResponse, status_code=201)
async def create_employee(
    body: EmployeeCreate,
    viewer: Viewer = Depends(_admin_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await EmployeeService.create_employee(db, viewer, body)


# ── GET /employees/direct-reports ───────────────────────────────────
# Defined before /employees/{employee_id} to avoid a path conflict.

@employees_router.get("/direct-reports", response_model=list[EmployeeResponse])
async def list_direct_reports(
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await EmployeeService.direct_reports(db, viewer)


# ── GET /employees/{id} ─────────────────────────────────────────────

@employees_router.get("/{employee_id}", response_model=EmployeeResponse)
async def get_employee(
    employee_id: uuid.UUID,
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await EmployeeService.get_employee(db, viewer, employee_id)


# ── PATCH /employees/{id} ───────────────────────────────────────────

@employees_router.patch("/{employee_id}", response_model=EmployeeResponse)
async def update_employee(
    employee_id: uuid.UUID,
    body: EmployeeUpdate,
    viewer: Viewer = Depends(_admin_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await EmployeeService.update_employee(db, viewer, employee_id, body)


# ── DELETE /employees/{id} — deactivate ─────────────────────────────

@employees_router.delete("/{employee_id}", response_model=EmployeeResponse)
async def deactivate_employee(
    employee_id: uuid.UUID,
    viewer: Viewer = Depends(_admin_viewer),
    db: AsyncSession = Depends(get_db),
):
    """Soft delete: the profile is kept but can no longer sign in."""
    return await EmployeeService.deactivate_employee(db, viewer, employee_id)


# ═════════════════════════════════════════════════════════════════════
# Own Profile
# ═════════════════════════════════════════════════════════════════════


@profile_router.get("/me", response_model=EmployeeResponse)
async def get_my_profile(
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await EmployeeService.get_own_profile(db, viewer)


@profile_router.patch("/me", response_model=EmployeeResponse)
async def update_my_profile(
    body: ProfileUpdate,
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await EmployeeService.update_own_profile(db, viewer, body)


# ═════════════════════════════════════════════════════════════════════
# Team Endpoints
# ═════════════════════════════════════════════════════════════════════


@teams_router.get("", response_model=list[TeamResponse])
async def list_teams(
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await TeamService.list_teams(db, viewer)


@teams_router.post("", response_model=TeamResponse, status_code=201)
async def create_team(
    body: TeamCreate,
    viewer: Viewer = Depends(_admin_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await TeamService.create_team(db, viewer, body)


@teams_router.patch("/{team_id}", response_model=TeamResponse)
async def update_team(
    team_id: uuid.UUID,
    body: TeamUpdate,
    viewer: Viewer = Depends(_admin_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await TeamService.update_team(db, viewer, team_id, body)


@teams_router.delete("/{team_id}", status_code=204)
async def delete_team(
    team_id: uuid.UUID,
    viewer: Viewer = Depends(_admin_viewer),
    db: AsyncSession = Depends(get_db),
):
    await TeamService.delete_team(db, viewer, team_id)


@teams_router.get("/{team_id}/members", response_model=list[EmployeeResponse])
async def list_team_members(
    team_id: uuid.UUID,
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await TeamService.list_members(db, viewer, team_id)


@teams_router.put("/{team_id}/members", response_model=list[EmployeeResponse])
async def set_team_members(
    team_id: uuid.UUID,
    body: TeamMembersUpdate,
    viewer: Viewer = Depends(_admin_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await TeamService.set_members(db, viewer, team_id, body)
