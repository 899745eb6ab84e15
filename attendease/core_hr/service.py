"""Core HR service layer — employees, own profile, teams.

Uses:
  - ``apply_role_scope / ensure_access`` from attendease.common.scoping
  - ``paginate()`` from attendease.common.pagination
  - ``apply_filters / apply_search`` from attendease.common.filters
  - ``create_audit_entry`` from attendease.common.audit
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from attendease.auth.service import get_profile_by_email, hash_password, normalize_email, revoke_all_sessions
from attendease.common.audit import changed_fields, create_audit_entry
from attendease.common.constants import UserRole
from attendease.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from attendease.common.filters import apply_filters, apply_search
from attendease.common.pagination import PaginatedResponse, PaginationParams, paginate
from attendease.common.scoping import Viewer, apply_role_scope, apply_team_scope, ensure_access
from attendease.core_hr.models import Profile, Team
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

logger = logging.getLogger(__name__)

# ═════════════════════════════════════════════════════════════════════
# EmployeeService
# ═════════════════════════════════════════════════════════════════════


class EmployeeService:
    """Async operations on employee profiles, all role-scoped."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    async def _load(db: AsyncSession, employee_id: uuid.UUID) -> Profile:
        profile = await db.get(Profile, employee_id)
        if profile is None:
            raise NotFoundException("Employee", employee_id)
        return profile

    @staticmethod
    def _ensure_can_manage(viewer: Viewer, target: Profile) -> None:
        """Admins manage their company except super-admins; super-admins manage all."""
        if not viewer.is_elevated:
            raise ForbiddenException("Only admins can manage employees.")
        ensure_access(viewer, target)
        if viewer.role == UserRole.admin and target.role == UserRole.super_admin:
            raise ForbiddenException("Admins cannot modify a super admin.")

    @staticmethod
    async def _validate_org_refs(
        db: AsyncSession,
        company_id: uuid.UUID,
        *,
        reporting_manager_id: Optional[uuid.UUID],
        team_id: Optional[uuid.UUID],
    ) -> None:
        """Manager and team must exist inside the same company."""
        if reporting_manager_id is not None:
            manager = await db.get(Profile, reporting_manager_id)
            if manager is None or manager.company_id != company_id or not manager.is_active:
                raise ValidationException(
                    {"reporting_manager_id": ["Reporting manager must be an active employee of the same company."]}
                )
        if team_id is not None:
            team = await db.get(Team, team_id)
            if team is None or team.company_id != company_id:
                raise ValidationException({"team_id": ["Team must belong to the same company."]})

    # ── List (paginated, searchable, role-scoped) ───────────────────

    @staticmethod
    async def list_employees(
        db: AsyncSession,
        viewer: Viewer,
        pagination: PaginationParams,
        *,
        search: Optional[str] = None,
        department: Optional[str] = None,
        role: Optional[UserRole] = None,
        team_id: Optional[uuid.UUID] = None,
        is_active: Optional[bool] = True,
    ) -> PaginatedResponse:
        query = select(Profile).order_by(Profile.name)
        query = apply_role_scope(
            query, viewer,
            employee_column=Profile.id,
            company_column=Profile.company_id,
        )
        query = apply_filters(query, Profile, {
            "department": department,
            "role": role,
            "team_id": team_id,
            "is_active": is_active,
        })
        query = apply_search(query, Profile, search, ["name", "email", "position"])

        return await paginate(db, query, pagination, model=Profile, schema=EmployeeResponse)

    # ── Detail ──────────────────────────────────────────────────────

    @staticmethod
    async def get_employee(
        db: AsyncSession,
        viewer: Viewer,
        employee_id: uuid.UUID,
    ) -> EmployeeResponse:
        profile = await EmployeeService._load(db, employee_id)
        ensure_access(viewer, profile)
        return EmployeeResponse.model_validate(profile)

    @staticmethod
    async def direct_reports(db: AsyncSession, viewer: Viewer) -> list[EmployeeResponse]:
        result = await db.execute(
            select(Profile)
            .where(Profile.reporting_manager_id == viewer.id, Profile.is_active.is_(True))
            .order_by(Profile.name)
        )
        return [EmployeeResponse.model_validate(p) for p in result.scalars().all()]

    # ── Create (privileged) ─────────────────────────────────────────

    @staticmethod
    async def create_employee(
        db: AsyncSession,
        viewer: Viewer,
        data: EmployeeCreate,
    ) -> EmployeeResponse:
        """Create a credentialed profile in the viewer's company.

        Only admins and super-admins may call this; only a super-admin may
        create another super-admin.
        """
        if not viewer.is_elevated:
            raise ForbiddenException("Only admins can create employees.")
        if data.role == UserRole.super_admin and viewer.role != UserRole.super_admin:
            raise ForbiddenException("Only a super admin can create another super admin.")

        email = normalize_email(data.email)
        if await get_profile_by_email(db, email) is not None:
            raise ConflictError("email", email)

        company_id = viewer.write_company_id
        await EmployeeService._validate_org_refs(
            db, company_id,
            reporting_manager_id=data.reporting_manager_id,
            team_id=data.team_id,
        )

        profile = Profile(
            company_id=company_id,
            email=email,
            name=data.name.strip(),
            role=data.role,
            department=data.department or None,
            position=data.position or None,
            hire_date=data.hire_date,
            reporting_manager_id=data.reporting_manager_id,
            team_id=data.team_id,
            password_hash=hash_password(data.password),
            is_active=True,
        )
        db.add(profile)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="profile",
            entity_id=profile.id,
            actor_id=viewer.id,
            new_values=data.model_dump(exclude={"password"}),
        )
        logger.info("Employee %s created by %s", profile.id, viewer.id)
        return EmployeeResponse.model_validate(profile)

    # ── Update (admin) ──────────────────────────────────────────────

    @staticmethod
    async def update_employee(
        db: AsyncSession,
        viewer: Viewer,
        employee_id: uuid.UUID,
        data: EmployeeUpdate,
    ) -> EmployeeResponse:
        profile = await EmployeeService._load(db, employee_id)
        EmployeeService._ensure_can_manage(viewer, profile)

        changes = data.model_dump(exclude_unset=True)
        if "name" in changes and changes["name"] is None:
            raise ValidationException({"name": ["Name cannot be empty."]})
        if "role" in changes:
            if changes["role"] is None:
                raise ValidationException({"role": ["Role is required."]})
            if changes["role"] == UserRole.super_admin and viewer.role != UserRole.super_admin:
                raise ForbiddenException("Only a super admin can grant the super admin role.")
            if profile.id == viewer.id and changes["role"] != profile.role:
                raise ForbiddenException("You cannot change your own role.")
        if changes.get("reporting_manager_id") == profile.id:
            raise ValidationException({"reporting_manager_id": ["An employee cannot report to themselves."]})
        if "is_active" in changes and changes["is_active"] is None:
            raise ValidationException({"is_active": ["Must be true or false."]})

        await EmployeeService._validate_org_refs(
            db, profile.company_id,
            reporting_manager_id=changes.get("reporting_manager_id"),
            team_id=changes.get("team_id"),
        )

        old_values, new_values = changed_fields(profile, changes)
        for key, value in changes.items():
            setattr(profile, key, value)
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="profile",
            entity_id=profile.id,
            actor_id=viewer.id,
            old_values=old_values,
            new_values=new_values,
        )
        return EmployeeResponse.model_validate(profile)

    # ── Deactivate (soft delete) ────────────────────────────────────

    @staticmethod
    async def deactivate_employee(
        db: AsyncSession,
        viewer: Viewer,
        employee_id: uuid.UUID,
    ) -> EmployeeResponse:
        profile = await EmployeeService._load(db, employee_id)
        EmployeeService._ensure_can_manage(viewer, profile)
        if profile.id == viewer.id:
            raise ForbiddenException("You cannot deactivate your own account.")

        profile.is_active = False
        await revoke_all_sessions(db, profile.id)
        await db.flush()

        await create_audit_entry(
            db,
            action="deactivate",
            entity_type="profile",
            entity_id=profile.id,
            actor_id=viewer.id,
            old_values={"is_active": True},
            new_values={"is_active": False},
        )
        logger.info("Employee %s deactivated by %s", profile.id, viewer.id)
        return EmployeeResponse.model_validate(profile)

    # ── Own profile ─────────────────────────────────────────────────

    @staticmethod
    async def get_own_profile(db: AsyncSession, viewer: Viewer) -> EmployeeResponse:
        profile = await EmployeeService._load(db, viewer.id)
        return EmployeeResponse.model_validate(profile)

    @staticmethod
    async def update_own_profile(
        db: AsyncSession,
        viewer: Viewer,
        data: ProfileUpdate,
    ) -> EmployeeResponse:
        profile = await EmployeeService._load(db, viewer.id)
        changes = data.model_dump(exclude_unset=True)
        if "name" in changes and not changes["name"]:
            raise ValidationException({"name": ["Name cannot be empty."]})

        old_values, new_values = changed_fields(profile, changes)
        for key, value in changes.items():
            setattr(profile, key, value)
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="profile",
            entity_id=profile.id,
            actor_id=viewer.id,
            old_values=old_values,
            new_values=new_values,
        )
        return EmployeeResponse.model_validate(profile)


# ═════════════════════════════════════════════════════════════════════
# TeamService
# ═════════════════════════════════════════════════════════════════════


class TeamService:
    """Team CRUD and membership."""

    @staticmethod
    async def _member_counts(db: AsyncSession, team_ids: list[uuid.UUID]) -> dict[uuid.UUID, int]:
        if not team_ids:
            return {}
        result = await db.execute(
            select(Profile.team_id, func.count())
            .where(Profile.team_id.in_(team_ids), Profile.is_active.is_(True))
            .group_by(Profile.team_id)
        )
        return {row[0]: row[1] for row in result.all()}

    @staticmethod
    def _to_response(team: Team, member_count: int) -> TeamResponse:
        out = TeamResponse.model_validate(team)
        out.member_count = member_count
        return out

    @staticmethod
    async def _load(db: AsyncSession, viewer: Viewer, team_id: uuid.UUID) -> Team:
        team = await db.get(Team, team_id)
        if team is None:
            raise NotFoundException("Team", team_id)
        if viewer.company_id is not None and team.company_id != viewer.company_id:
            raise ForbiddenException("This team belongs to another company.")
        return team

    @staticmethod
    async def _validate_manager(db: AsyncSession, company_id: uuid.UUID, manager_id: Optional[uuid.UUID]) -> None:
        if manager_id is None:
            return
        manager = await db.get(Profile, manager_id)
        if manager is None or manager.company_id != company_id or not manager.is_active:
            raise ValidationException({"manager_id": ["Manager must be an active employee of the same company."]})

    @staticmethod
    async def list_teams(db: AsyncSession, viewer: Viewer) -> list[TeamResponse]:
        """Teams holding anyone in the caller's scope, plus the teams they lead."""
        query = apply_team_scope(select(Team).order_by(Team.name), viewer)
        teams = (await db.execute(query)).scalars().all()
        counts = await TeamService._member_counts(db, [t.id for t in teams])
        return [TeamService._to_response(t, counts.get(t.id, 0)) for t in teams]

    @staticmethod
    async def list_members(
        db: AsyncSession,
        viewer: Viewer,
        team_id: uuid.UUID,
    ) -> list[EmployeeResponse]:
        await TeamService._load(db, viewer, team_id)
        query = select(Profile).where(Profile.team_id == team_id, Profile.is_active.is_(True))
        query = apply_role_scope(
            query, viewer,
            employee_column=Profile.id,
            company_column=Profile.company_id,
        ).order_by(Profile.name)
        result = await db.execute(query)
        return [EmployeeResponse.model_validate(p) for p in result.scalars().all()]

    @staticmethod
    async def create_team(db: AsyncSession, viewer: Viewer, data: TeamCreate) -> TeamResponse:
        company_id = viewer.write_company_id
        existing = await db.execute(
            select(Team.id).where(Team.company_id == company_id, Team.name == data.name.strip())
        )
        if existing.scalar() is not None:
            raise ConflictError("name", data.name)
        await TeamService._validate_manager(db, company_id, data.manager_id)

        team = Team(
            company_id=company_id,
            name=data.name.strip(),
            description=data.description,
            manager_id=data.manager_id,
            is_active=True,
        )
        db.add(team)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="team",
            entity_id=team.id,
            actor_id=viewer.id,
            new_values=data.model_dump(),
        )
        return TeamService._to_response(team, 0)

    @staticmethod
    async def update_team(
        db: AsyncSession,
        viewer: Viewer,
        team_id: uuid.UUID,
        data: TeamUpdate,
    ) -> TeamResponse:
        team = await TeamService._load(db, viewer, team_id)
        changes = data.model_dump(exclude_unset=True)
        if "manager_id" in changes:
            await TeamService._validate_manager(db, team.company_id, changes["manager_id"])
        for key, value in changes.items():
            if value is None and key in ("name", "is_active"):
                continue
            setattr(team, key, value)
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="team",
            entity_id=team.id,
            actor_id=viewer.id,
            new_values=changes,
        )
        counts = await TeamService._member_counts(db, [team.id])
        return TeamService._to_response(team, counts.get(team.id, 0))

    @staticmethod
    async def set_members(
        db: AsyncSession,
        viewer: Viewer,
        team_id: uuid.UUID,
        data: TeamMembersUpdate,
    ) -> list[EmployeeResponse]:
        """Replace the team's membership with *employee_ids*."""
        team = await TeamService._load(db, viewer, team_id)
        wanted = set(data.employee_ids)

        if wanted:
            result = await db.execute(select(Profile).where(Profile.id.in_(wanted)))
            profiles = result.scalars().all()
            if len(profiles) != len(wanted) or any(p.company_id != team.company_id for p in profiles):
                raise ValidationException({"employee_ids": ["All members must be employees of the team's company."]})
            for profile in profiles:
                profile.team_id = team.id

        current = await db.execute(select(Profile).where(Profile.team_id == team.id))
        for profile in current.scalars().all():
            if profile.id not in wanted:
                profile.team_id = None
        await db.flush()

        await create_audit_entry(
            db,
            action="set_members",
            entity_type="team",
            entity_id=team.id,
            actor_id=viewer.id,
            new_values={"employee_ids": sorted(str(i) for i in wanted)},
        )
        return await TeamService.list_members(db, viewer, team.id)

    @staticmethod
    async def delete_team(db: AsyncSession, viewer: Viewer, team_id: uuid.UUID) -> None:
        team = await TeamService._load(db, viewer, team_id)
        name = team.name
        members = await db.execute(select(Profile).where(Profile.team_id == team.id))
        for profile in members.scalars().all():
            profile.team_id = None
        await db.delete(team)
        await db.flush()

        await create_audit_entry(
            db,
            action="delete",
            entity_type="team",
            entity_id=team_id,
            actor_id=viewer.id,
            old_values={"name": name},
        )
