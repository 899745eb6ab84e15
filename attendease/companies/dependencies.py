"""Company/tenant context — resolve which company scopes a request."""

from __future__ import annotations

import uuid
from typing import Callable, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.auth.dependencies import get_current_user, require_role
from attendease.common.constants import UserRole
from attendease.common.exceptions import ForbiddenException, NotFoundException, ValidationException
from attendease.common.scoping import Viewer
from attendease.companies.models import Company
from attendease.core_hr.models import Profile
from attendease.database import get_db

COMPANY_HEADER = "X-Company-Id"


def _parse_company_header(request: Request) -> Optional[uuid.UUID]:
    raw = request.headers.get(COMPANY_HEADER)
    if not raw:
        return None
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise ValidationException({COMPANY_HEADER: ["Must be a valid UUID."]})


async def resolve_company_id(
    db: AsyncSession,
    profile: Profile,
    requested: Optional[uuid.UUID],
) -> Optional[uuid.UUID]:
    """Pin non super-admins to their own company; let super-admins pick one or all."""
    if profile.role != UserRole.super_admin:
        if requested is not None and requested != profile.company_id:
            raise ForbiddenException("You cannot access another company's data.")
        return profile.company_id

    if requested is None:
        return None
    if await db.get(Company, requested) is None:
        raise NotFoundException("Company", requested)
    return requested


async def get_viewer(
    request: Request,
    profile: Profile = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Viewer:
    """FastAPI dependency: the caller's identity, role and tenant scope."""
    company_id = await resolve_company_id(db, profile, _parse_company_header(request))
    return Viewer(
        id=profile.id,
        role=profile.role,
        company_id=company_id,
        home_company_id=profile.company_id,
    )


def require_viewer(*allowed_roles: UserRole) -> Callable:
    """Like ``require_role`` but yields the scoped ``Viewer``."""

    async def _check(
        _: Profile = Depends(require_role(*allowed_roles)),
        viewer: Viewer = Depends(get_viewer),
    ) -> Viewer:
        return viewer

    return _check
