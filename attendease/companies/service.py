"""Company service — tenant listing and super-admin management."""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.common.audit import changed_fields, create_audit_entry
from attendease.common.constants import UserRole
from attendease.common.exceptions import ConflictError, ForbiddenException, NotFoundException
from attendease.common.scoping import Viewer
from attendease.companies.models import Company
from attendease.companies.schemas import CompanyCreate, CompanyResponse, CompanyUpdate


class CompanyService:
    """Async tenant operations."""

    @staticmethod
    async def _ensure_domain_free(
        db: AsyncSession,
        domain: Optional[str],
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        if not domain:
            return
        query = select(Company.id).where(func.lower(Company.domain) == domain)
        if exclude_id is not None:
            query = query.where(Company.id != exclude_id)
        if (await db.execute(query)).scalar() is not None:
            raise ConflictError("domain", domain)

    @staticmethod
    async def list_companies(db: AsyncSession, viewer: Viewer) -> list[CompanyResponse]:
        """Super-admins see every company; everyone else only their own."""
        query = select(Company).order_by(Company.name)
        if viewer.role != UserRole.super_admin:
            query = query.where(Company.id == viewer.home_company_id)
        result = await db.execute(query)
        return [CompanyResponse.model_validate(c) for c in result.scalars().all()]

    @staticmethod
    async def get_company(db: AsyncSession, company_id: uuid.UUID) -> Company:
        company = await db.get(Company, company_id)
        if company is None:
            raise NotFoundException("Company", company_id)
        return company

    @staticmethod
    async def get_current(db: AsyncSession, viewer: Viewer) -> CompanyResponse:
        """The company currently scoping the viewer's requests (home company if none selected)."""
        company = await CompanyService.get_company(db, viewer.write_company_id)
        return CompanyResponse.model_validate(company)

    @staticmethod
    async def create_company(
        db: AsyncSession,
        viewer: Viewer,
        data: CompanyCreate,
    ) -> CompanyResponse:
        await CompanyService._ensure_domain_free(db, data.domain)
        company = Company(name=data.name.strip(), domain=data.domain)
        db.add(company)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="company",
            entity_id=company.id,
            actor_id=viewer.id,
            new_values={"name": company.name, "domain": company.domain},
        )
        return CompanyResponse.model_validate(company)

    @staticmethod
    async def update_company(
        db: AsyncSession,
        viewer: Viewer,
        company_id: uuid.UUID,
        data: CompanyUpdate,
    ) -> CompanyResponse:
        if viewer.role != UserRole.super_admin and company_id != viewer.home_company_id:
            raise ForbiddenException("You can only update your own company.")

        company = await CompanyService.get_company(db, company_id)
        changes = data.model_dump(exclude_unset=True)
        if "domain" in changes:
            await CompanyService._ensure_domain_free(db, changes["domain"], exclude_id=company.id)

        old_values, new_values = changed_fields(company, changes)
        for key, value in changes.items():
            setattr(company, key, value)
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="company",
            entity_id=company.id,
            actor_id=viewer.id,
            old_values=old_values,
            new_values=new_values,
        )
        return CompanyResponse.model_validate(company)
