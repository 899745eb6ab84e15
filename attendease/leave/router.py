"""Leave router — requests, approvals, leave types, balances.

Routes:
    /leave/requests                     — List (scoped), apply
    /leave/requests/backdated           — File leave already taken
    /leave/requests/pending             — Approval queue
    /leave/requests/{id}/approve|reject — Decide (manager / admin)
    /leave/requests/{id}                — Cancel own pending request
    /leave/types                        — List, create (admin)
    /leave/types/{id}                   — Update (admin)
    /leave/balances                     — Own or in-scope employee balances
    /leave/balances/allocate            — Set allocation (admin)
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.common.constants import LeaveStatus, UserRole
from attendease.common.pagination import PaginationParams
from attendease.common.scoping import Viewer
from attendease.companies.dependencies import get_viewer, require_viewer
from attendease.database import get_db
from attendease.leave.schemas import (
    BackdatedLeaveCreate,
    BalanceAllocate,
    LeaveBalanceResponse,
    LeaveDecision,
    LeaveRequestCreate,
    LeaveRequestResponse,
    LeaveTypeCreate,
    LeaveTypeResponse,
    LeaveTypeUpdate,
)
from attendease.leave.service import LeaveBalanceService, LeaveService, LeaveTypeService

router = APIRouter(prefix="", tags=["leave"])

_admin_viewer = require_viewer(UserRole.admin)
_approver_viewer = require_viewer(UserRole.reporting_manager)


# ═════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════


@router.get("/requests")
async def list_requests(
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
    pagination: PaginationParams = Depends(),
    employee_id: Optional[uuid.UUID] = Query(None),
    status: Optional[LeaveStatus] = Query(None),
    leave_type_id: Optional[uuid.UUID] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
):
    result = await LeaveService.list_requests(
        db, viewer, pagination,
        employee_id=employee_id,
        status=status,
        leave_type_id=leave_type_id,
        from_date=from_date,
        to_date=to_date,
    )
    return {
        "data": [item.model_dump(mode="json") for item in result.data],
        "meta": result.meta.model_dump(),
    }


@router.post("/requests", response_model=LeaveRequestResponse, status_code=201)
async def submit_request(
    body: LeaveRequestCreate,
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.submit_request(db, viewer, body)


@router.post("/requests/backdated", response_model=LeaveRequestResponse, status_code=201)
async def submit_backdated(
    body: BackdatedLeaveCreate,
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.submit_backdated(db, viewer, body)


@router.get("/requests/pending", response_model=list[LeaveRequestResponse])
async def pending_approvals(
    viewer: Viewer = Depends(_approver_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.pending_approvals(db, viewer)


@router.post("/requests/{request_id}/approve", response_model=LeaveRequestResponse)
async def approve_request(
    request_id: uuid.UUID,
    body: Optional[LeaveDecision] = None,
    viewer: Viewer = Depends(_approver_viewer),
    db: AsyncSession = Depends(get_db),
):
    comments = body.comments if body else None
    return await LeaveService.approve(db, viewer, request_id, comments)


@router.post("/requests/{request_id}/reject", response_model=LeaveRequestResponse)
async def reject_request(
    request_id: uuid.UUID,
    body: Optional[LeaveDecision] = None,
    viewer: Viewer = Depends(_approver_viewer),
    db: AsyncSession = Depends(get_db),
):
    comments = body.comments if body else None
    return await LeaveService.reject(db, viewer, request_id, comments)


@router.delete("/requests/{request_id}", status_code=204)
async def cancel_request(
    request_id: uuid.UUID,
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    await LeaveService.cancel(db, viewer, request_id)


# ═════════════════════════════════════════════════════════════════════
# Leave types
# ═════════════════════════════════════════════════════════════════════


@router.get("/types", response_model=list[LeaveTypeResponse])
async def list_leave_types(
    include_inactive: bool = Query(False),
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveTypeService.list_leave_types(db, viewer, include_inactive)


@router.post("/types", response_model=LeaveTypeResponse, status_code=201)
async def create_leave_type(
    body: LeaveTypeCreate,
    viewer: Viewer = Depends(_admin_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveTypeService.create_leave_type(db, viewer, body)


@router.patch("/types/{leave_type_id}", response_model=LeaveTypeResponse)
async def update_leave_type(
    leave_type_id: uuid.UUID,
    body: LeaveTypeUpdate,
    viewer: Viewer = Depends(_admin_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveTypeService.update_leave_type(db, viewer, leave_type_id, body)


# ═════════════════════════════════════════════════════════════════════
# Balances
# ═════════════════════════════════════════════════════════════════════


@router.get("/balances", response_model=list[LeaveBalanceResponse])
async def get_balances(
    employee_id: Optional[uuid.UUID] = Query(None),
    year: Optional[int] = Query(None, ge=1970, le=2100),
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveBalanceService.get_balances(db, viewer, employee_id=employee_id, year=year)


@router.put("/balances/allocate", response_model=LeaveBalanceResponse)
async def allocate_balance(
    body: BalanceAllocate,
    viewer: Viewer = Depends(_admin_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveBalanceService.allocate_balance(db, viewer, body)
