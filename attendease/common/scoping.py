"""Role-scoped query filters — which rows a caller may read or mutate.

One rule, shared by attendance, leave, reports, teams and employee listings
(teams through :func:`apply_team_scope`):

    ==================  ==============================================
    Role                Visible rows
    ==================  ==============================================
    employee            own rows
    reporting_manager   own rows + rows of direct reports
    admin               every row of the admin's company
    super_admin         every company, or the one selected via header
    ==================  ==============================================
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import Select, or_, select

from attendease.common.constants import ELEVATED_ROLES, ROLE_RANK, UserRole
from attendease.common.exceptions import ForbiddenException
from attendease.core_hr.models import Profile, Team


@dataclass(frozen=True)
class Viewer:
    """Authenticated caller with role and resolved tenant.

    ``company_id`` is ``None`` only for a super_admin looking across all
    companies; ``home_company_id`` is always the caller's own company.
    """

    id: uuid.UUID
    role: UserRole
    company_id: Optional[uuid.UUID]
    home_company_id: uuid.UUID

    @property
    def is_elevated(self) -> bool:
        return self.role in ELEVATED_ROLES

    @property
    def write_company_id(self) -> uuid.UUID:
        """Company that newly created rows belong to."""
        return self.company_id or self.home_company_id

    def at_least(self, role: UserRole) -> bool:
        return ROLE_RANK[self.role] >= ROLE_RANK[role]


def direct_reports_of(manager_id: uuid.UUID) -> Select:
    """Sub-select of profile ids whose reporting manager is *manager_id*."""
    return select(Profile.id).where(Profile.reporting_manager_id == manager_id)


def apply_role_scope(
    query: Select,
    viewer: Viewer,
    *,
    employee_column: Any,
    company_column: Any,
) -> Select:
    """Narrow *query* to the rows *viewer* may see."""
    if viewer.role == UserRole.employee:
        return query.where(employee_column == viewer.id)

    if viewer.role == UserRole.reporting_manager:
        return query.where(
            or_(
                employee_column == viewer.id,
                employee_column.in_(direct_reports_of(viewer.id)),
            )
        )

    if viewer.role == UserRole.admin:
        return query.where(company_column == viewer.company_id)

    # super_admin: all companies unless one was selected
    if viewer.company_id is not None:
        return query.where(company_column == viewer.company_id)
    return query


def apply_team_scope(query: Select, viewer: Viewer) -> Select:
    """Narrow a ``Team`` query with the same rule.

    Admins and super_admins see teams by company. Everyone else sees the
    teams of the profiles they can see, plus the teams they lead.
    """
    if viewer.is_elevated:
        return apply_role_scope(
            query, viewer,
            employee_column=Team.manager_id,
            company_column=Team.company_id,
        )

    visible_teams = apply_role_scope(
        select(Profile.team_id).where(Profile.team_id.is_not(None)), viewer,
        employee_column=Profile.id,
        company_column=Profile.company_id,
    )
    return query.where(or_(Team.id.in_(visible_teams), Team.manager_id == viewer.id))


def can_access(viewer: Viewer, profile: Profile) -> bool:
    """Single-row form of :func:`apply_role_scope`."""
    if profile.id == viewer.id:
        return True
    if viewer.role == UserRole.employee:
        return False
    if viewer.role == UserRole.reporting_manager:
        return profile.reporting_manager_id == viewer.id
    if viewer.role == UserRole.admin:
        return profile.company_id == viewer.company_id
    return viewer.company_id is None or profile.company_id == viewer.company_id


def ensure_access(viewer: Viewer, profile: Profile) -> None:
    """Raise 403 unless *profile* is within the viewer's scope."""
    if not can_access(viewer, profile):
        raise ForbiddenException("This record is outside your access scope.")
