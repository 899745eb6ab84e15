"""Companies router — tenant context and super-admin company management."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.common.constants import UserRole
from attendease.common.scoping import Viewer
from attendease.companies.dependencies import get_viewer, require_viewer
from attendease.companies.schemas import CompanyCreate, CompanyResponse, CompanyUpdate
from attendease.companies.service import CompanyService
from attendease.database import get_db

router = APIRouter(prefix="", tags=["companies"])


# ── GET / ───────────────────────────────────────────────────────────

@router.get("", response_model=list[CompanyResponse])
async def list_companies(
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await CompanyService.list_companies(db, viewer)


# ── GET /current ────────────────────────────────────────────────────

@router.get("/current", response_model=CompanyResponse)
async def current_company(
    viewer: Viewer = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    """Company scoping this request (honours ``X-Company-Id`` for super-admins)."""
    return await CompanyService.get_current(db, viewer)


# ── POST / ──────────────────────────────────────────────────────────

@router.post("", response_model=CompanyResponse, status_code=201)
async def create_company(
    body: CompanyCreate,
    viewer: Viewer = Depends(require_viewer(UserRole.super_admin)),
    db: AsyncSession = Depends(get_db),
):
    return await CompanyService.create_company(db, viewer, body)


# ── PATCH /{id} ─────────────────────────────────────────────────────

@router.patch("/{company_id}", response_model=CompanyResponse)
async def update_company(
    company_id: uuid.UUID,
    body: CompanyUpdate,
    viewer: Viewer = Depends(require_viewer(UserRole.admin)),
    db: AsyncSession = Depends(get_db),
):
    """Super-admins may update any company; admins only their own."""
    return await CompanyService.update_company(db, viewer, company_id, body)
