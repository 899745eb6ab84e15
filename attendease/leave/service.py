"""Leave service layer — requests, approvals, leave types, balances.

Business logic:
  - Day count is the inclusive calendar span of the request
  - Super-admin requests are approved on submission
  - Approval moves ``total_days`` into the matching balance's ``used_days``
  - Every read is role-scoped through ``apply_role_scope``
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from attendease.common.audit import create_audit_entry
from attendease.common.clock import local_today, utcnow
from attendease.common.constants import APPROVER_ROLES, LeaveStatus, UserRole
from attendease.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from attendease.common.filters import apply_filters
from attendease.common.pagination import PaginatedResponse, PaginationParams, paginate
from attendease.common.scoping import Viewer, apply_role_scope, ensure_access
from attendease.core_hr.models import Profile
from attendease.leave.models import LeaveBalance, LeaveRequest, LeaveType
from attendease.leave.schemas import (
    BackdatedLeaveCreate,
    BalanceAllocate,
    LeaveBalanceResponse,
    LeaveRequestCreate,
    LeaveRequestResponse,
    LeaveTypeCreate,
    LeaveTypeResponse,
    LeaveTypeUpdate,
)

logger = logging.getLogger(__name__)

_ONE_DAY = timedelta(days=1)


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: apply, approve/reject, cancel, read."""

    # ── Day count ───────────────────────────────────────────────────

    @staticmethod
    def count_leave_days(start_date: date, end_date: date) -> int:
        """Inclusive number of calendar days between *start_date* and *end_date*."""
        if end_date < start_date:
            raise ValidationException({"end_date": ["End date cannot be before start date."]})
        return math.ceil((end_date - start_date) / _ONE_DAY) + 1

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    async def _load(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .options(
                selectinload(LeaveRequest.employee),
                selectinload(LeaveRequest.leave_type),
            )
            .execution_options(populate_existing=True)
        )
        leave_req = result.scalars().first()
        if leave_req is None:
            raise NotFoundException("LeaveRequest", request_id)
        return leave_req

    @staticmethod
    async def _active_leave_type(
        db: AsyncSession,
        leave_type_id: uuid.UUID,
        company_id: uuid.UUID,
    ) -> LeaveType:
        leave_type = await db.get(LeaveType, leave_type_id)
        if leave_type is None or leave_type.company_id != company_id:
            raise NotFoundException("LeaveType", leave_type_id)
        if not leave_type.is_active:
            raise ValidationException({"leave_type_id": [f"{leave_type.name} is no longer available."]})
        return leave_type

    @staticmethod
    async def _ensure_no_overlap(
        db: AsyncSession,
        employee_id: uuid.UUID,
        start_date: date,
        end_date: date,
    ) -> None:
        result = await db.execute(
            select(func.count()).select_from(LeaveRequest).where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status.in_([LeaveStatus.pending, LeaveStatus.approved]),
                LeaveRequest.start_date <= end_date,
                LeaveRequest.end_date >= start_date,
            )
        )
        if result.scalar_one() > 0:
            raise ValidationException(
                {"dates": [
                    "You already have a pending or approved leave request "
                    "overlapping with these dates."
                ]}
            )

    @staticmethod
    async def _record_usage(db: AsyncSession, leave_req: LeaveRequest) -> None:
        """Add the request's days to the employee's balance for that year, if one exists."""
        if leave_req.leave_type_id is None:
            return
        result = await db.execute(
            select(LeaveBalance).where(
                LeaveBalance.employee_id == leave_req.employee_id,
                LeaveBalance.leave_type_id == leave_req.leave_type_id,
                LeaveBalance.year == leave_req.start_date.year,
            )
        )
        balance = result.scalars().first()
        if balance:
            balance.used_days += leave_req.total_days

    @staticmethod
    def _scoped(query, viewer: Viewer):
        return apply_role_scope(
            query, viewer,
            employee_column=LeaveRequest.employee_id,
            company_column=LeaveRequest.company_id,
        )

    # ── Submit ──────────────────────────────────────────────────────

    @staticmethod
    async def submit_request(
        db: AsyncSession,
        viewer: Viewer,
        data: LeaveRequestCreate,
    ) -> LeaveRequestResponse:
        """Apply for leave. Super-admin requests skip the approval queue."""
        total_days = LeaveService.count_leave_days(data.start_date, data.end_date)
        leave_type = await LeaveService._active_leave_type(db, data.leave_type_id, viewer.home_company_id)
        await LeaveService._ensure_no_overlap(db, viewer.id, data.start_date, data.end_date)

        leave_req = LeaveRequest(
            company_id=viewer.home_company_id,
            employee_id=viewer.id,
            leave_type_id=leave_type.id,
            start_date=data.start_date,
            end_date=data.end_date,
            total_days=total_days,
            reason=data.reason,
            status=LeaveStatus.pending,
        )
        if viewer.role == UserRole.super_admin:
            leave_req.status = LeaveStatus.approved
            leave_req.approved_by = viewer.id
            leave_req.approved_at = utcnow()
        db.add(leave_req)
        await db.flush()

        if leave_req.status == LeaveStatus.approved:
            await LeaveService._record_usage(db, leave_req)
            await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=viewer.id,
            new_values={
                "leave_type": leave_type.name,
                "start_date": data.start_date.isoformat(),
                "end_date": data.end_date.isoformat(),
                "total_days": total_days,
                "status": leave_req.status.value,
            },
        )
        logger.info(
            "Leave request %s (%s days, %s) submitted by %s",
            leave_req.id, total_days, leave_req.status.value, viewer.id,
        )
        return LeaveRequestResponse.model_validate(await LeaveService._load(db, leave_req.id))

    @staticmethod
    async def submit_backdated(
        db: AsyncSession,
        viewer: Viewer,
        data: BackdatedLeaveCreate,
    ) -> LeaveRequestResponse:
        """Record leave already taken; it always waits for review."""
        today = local_today()
        if data.start_date > today or data.end_date > today:
            raise ValidationException({"dates": ["Backdated leave cannot include future dates."]})
        total_days = LeaveService.count_leave_days(data.start_date, data.end_date)

        employee_id = data.employee_id or viewer.id
        if viewer.role == UserRole.employee and employee_id != viewer.id:
            raise ForbiddenException("You can only file leave for yourself.")
        target = await db.get(Profile, employee_id)
        if target is None:
            raise NotFoundException("Employee", employee_id)
        ensure_access(viewer, target)

        leave_type_id = None
        if data.leave_type_id is not None:
            leave_type_id = (await LeaveService._active_leave_type(db, data.leave_type_id, target.company_id)).id
        await LeaveService._ensure_no_overlap(db, target.id, data.start_date, data.end_date)

        leave_req = LeaveRequest(
            company_id=target.company_id,
            employee_id=target.id,
            leave_type_id=leave_type_id,
            start_date=data.start_date,
            end_date=data.end_date,
            total_days=total_days,
            reason=data.reason,
            status=LeaveStatus.pending,
        )
        db.add(leave_req)
        await db.flush()

        await create_audit_entry(
            db,
            action="create_backdated",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=viewer.id,
            new_values={
                "employee_id": str(target.id),
                "start_date": data.start_date.isoformat(),
                "end_date": data.end_date.isoformat(),
                "total_days": total_days,
            },
        )
        return LeaveRequestResponse.model_validate(await LeaveService._load(db, leave_req.id))

    # ── Decide ──────────────────────────────────────────────────────

    @staticmethod
    async def _load_for_decision(
        db: AsyncSession,
        viewer: Viewer,
        request_id: uuid.UUID,
    ) -> LeaveRequest:
        if viewer.role not in APPROVER_ROLES:
            raise ForbiddenException("You are not authorized to review leave requests.")
        leave_req = await LeaveService._load(db, request_id)
        ensure_access(viewer, leave_req.employee)
        if leave_req.employee_id == viewer.id:
            raise ForbiddenException("You cannot review your own leave request.")
        if leave_req.status != LeaveStatus.pending:
            raise ValidationException(
                {"status": [f"Leave request is already {leave_req.status.value}."]}
            )
        return leave_req

    @staticmethod
    async def approve(
        db: AsyncSession,
        viewer: Viewer,
        request_id: uuid.UUID,
        comments: Optional[str] = None,
    ) -> LeaveRequestResponse:
        leave_req = await LeaveService._load_for_decision(db, viewer, request_id)

        leave_req.status = LeaveStatus.approved
        leave_req.approved_by = viewer.id
        leave_req.approved_at = utcnow()
        leave_req.admin_comments = comments
        await LeaveService._record_usage(db, leave_req)
        await db.flush()

        await create_audit_entry(
            db,
            action="approve",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=viewer.id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.approved.value, "comments": comments},
        )
        logger.info("Leave request %s approved by %s", leave_req.id, viewer.id)
        return LeaveRequestResponse.model_validate(await LeaveService._load(db, leave_req.id))

    @staticmethod
    async def reject(
        db: AsyncSession,
        viewer: Viewer,
        request_id: uuid.UUID,
        comments: Optional[str] = None,
    ) -> LeaveRequestResponse:
        leave_req = await LeaveService._load_for_decision(db, viewer, request_id)

        leave_req.status = LeaveStatus.rejected
        leave_req.approved_by = viewer.id
        leave_req.approved_at = utcnow()
        leave_req.admin_comments = comments
        await db.flush()

        await create_audit_entry(
            db,
            action="reject",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=viewer.id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.rejected.value, "comments": comments},
        )
        logger.info("Leave request %s rejected by %s", leave_req.id, viewer.id)
        return LeaveRequestResponse.model_validate(await LeaveService._load(db, leave_req.id))

    # ── Cancel ──────────────────────────────────────────────────────

    @staticmethod
    async def cancel(db: AsyncSession, viewer: Viewer, request_id: uuid.UUID) -> None:
        """Withdraw one of the caller's own pending requests."""
        leave_req = await LeaveService._load(db, request_id)
        if leave_req.employee_id != viewer.id:
            raise ForbiddenException("You can only cancel your own leave requests.")
        if leave_req.status != LeaveStatus.pending:
            raise ValidationException(
                {"status": [f"Only pending requests can be cancelled; this one is {leave_req.status.value}."]}
            )
        snapshot = {
            "start_date": leave_req.start_date.isoformat(),
            "end_date": leave_req.end_date.isoformat(),
            "total_days": leave_req.total_days,
        }
        await db.delete(leave_req)
        await db.flush()

        await create_audit_entry(
            db,
            action="cancel",
            entity_type="leave_request",
            entity_id=request_id,
            actor_id=viewer.id,
            old_values=snapshot,
        )

    # ── Reads ───────────────────────────────────────────────────────

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        viewer: Viewer,
        pagination: PaginationParams,
        *,
        employee_id: Optional[uuid.UUID] = None,
        status: Optional[LeaveStatus] = None,
        leave_type_id: Optional[uuid.UUID] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> PaginatedResponse:
        query = (
            select(LeaveRequest)
            .options(
                selectinload(LeaveRequest.employee),
                selectinload(LeaveRequest.leave_type),
            )
            .execution_options(populate_existing=True)
            .order_by(LeaveRequest.created_at.desc())
        )
        query = LeaveService._scoped(query, viewer)
        # A request matches a window when it overlaps it
        query = apply_filters(query, LeaveRequest, {
            "employee_id": employee_id,
            "status": status,
            "leave_type_id": leave_type_id,
            "end_date__from": from_date,
            "start_date__to": to_date,
        })

        return await paginate(db, query, pagination, model=LeaveRequest, schema=LeaveRequestResponse)

    @staticmethod
    async def pending_approvals(db: AsyncSession, viewer: Viewer) -> list[LeaveRequestResponse]:
        """Pending requests the caller could decide (never their own)."""
        query = (
            select(LeaveRequest)
            .where(
                LeaveRequest.status == LeaveStatus.pending,
                LeaveRequest.employee_id != viewer.id,
            )
            .options(
                selectinload(LeaveRequest.employee),
                selectinload(LeaveRequest.leave_type),
            )
            .execution_options(populate_existing=True)
            .order_by(LeaveRequest.created_at)
        )
        result = await db.execute(LeaveService._scoped(query, viewer))
        return [LeaveRequestResponse.model_validate(r) for r in result.scalars().all()]


# ═════════════════════════════════════════════════════════════════════
# LeaveTypeService
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeService:
    """Per-company leave type catalogue."""

    @staticmethod
    async def list_leave_types(
        db: AsyncSession,
        viewer: Viewer,
        include_inactive: bool = False,
    ) -> list[LeaveTypeResponse]:
        query = select(LeaveType).order_by(LeaveType.name)
        if viewer.company_id is not None:
            query = query.where(LeaveType.company_id == viewer.company_id)
        if not include_inactive:
            query = query.where(LeaveType.is_active.is_(True))
        result = await db.execute(query)
        return [LeaveTypeResponse.model_validate(lt) for lt in result.scalars().all()]

    @staticmethod
    async def _ensure_name_free(
        db: AsyncSession,
        company_id: uuid.UUID,
        name: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(LeaveType.id).where(
            LeaveType.company_id == company_id,
            func.lower(LeaveType.name) == name.lower(),
        )
        if exclude_id is not None:
            query = query.where(LeaveType.id != exclude_id)
        if (await db.execute(query)).scalar() is not None:
            raise ConflictError("name", name)

    @staticmethod
    async def create_leave_type(
        db: AsyncSession,
        viewer: Viewer,
        data: LeaveTypeCreate,
    ) -> LeaveTypeResponse:
        company_id = viewer.write_company_id
        name = data.name.strip()
        await LeaveTypeService._ensure_name_free(db, company_id, name)

        leave_type = LeaveType(
            company_id=company_id,
            name=name,
            description=data.description,
            max_days_per_year=data.max_days_per_year,
            is_active=True,
        )
        db.add(leave_type)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="leave_type",
            entity_id=leave_type.id,
            actor_id=viewer.id,
            new_values={"name": name, "max_days_per_year": data.max_days_per_year},
        )
        return LeaveTypeResponse.model_validate(leave_type)

    @staticmethod
    async def update_leave_type(
        db: AsyncSession,
        viewer: Viewer,
        leave_type_id: uuid.UUID,
        data: LeaveTypeUpdate,
    ) -> LeaveTypeResponse:
        leave_type = await db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundException("LeaveType", leave_type_id)
        if viewer.company_id is not None and leave_type.company_id != viewer.company_id:
            raise ForbiddenException("This leave type belongs to another company.")

        changes = data.model_dump(exclude_unset=True)
        if changes.get("name"):
            changes["name"] = changes["name"].strip()
            await LeaveTypeService._ensure_name_free(
                db, leave_type.company_id, changes["name"], exclude_id=leave_type.id,
            )
        for key, value in changes.items():
            if value is None and key in ("name", "is_active"):
                continue
            setattr(leave_type, key, value)
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="leave_type",
            entity_id=leave_type.id,
            actor_id=viewer.id,
            new_values=changes,
        )
        return LeaveTypeResponse.model_validate(leave_type)


# ═════════════════════════════════════════════════════════════════════
# LeaveBalanceService
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceService:
    """Yearly allocation and usage per employee and leave type."""

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        viewer: Viewer,
        *,
        employee_id: Optional[uuid.UUID] = None,
        year: Optional[int] = None,
    ) -> list[LeaveBalanceResponse]:
        """Balances of the caller, or of an employee in the caller's scope."""
        year = year or local_today().year
        employee_id = employee_id or viewer.id
        if employee_id != viewer.id:
            target = await db.get(Profile, employee_id)
            if target is None:
                raise NotFoundException("Employee", employee_id)
            ensure_access(viewer, target)

        result = await db.execute(
            select(LeaveBalance)
            .where(LeaveBalance.employee_id == employee_id, LeaveBalance.year == year)
            .options(selectinload(LeaveBalance.leave_type))
            .execution_options(populate_existing=True)
        )
        balances = sorted(result.scalars().all(), key=lambda b: b.leave_type.name)
        return [LeaveBalanceResponse.model_validate(b) for b in balances]

    @staticmethod
    async def allocate_balance(
        db: AsyncSession,
        viewer: Viewer,
        data: BalanceAllocate,
    ) -> LeaveBalanceResponse:
        """Set ``allocated_days`` for (employee, type, year), creating the row if needed."""
        if not viewer.is_elevated:
            raise ForbiddenException("Only admins can allocate leave.")
        target = await db.get(Profile, data.employee_id)
        if target is None:
            raise NotFoundException("Employee", data.employee_id)
        ensure_access(viewer, target)

        leave_type = await db.get(LeaveType, data.leave_type_id)
        if leave_type is None or leave_type.company_id != target.company_id:
            raise NotFoundException("LeaveType", data.leave_type_id)

        result = await db.execute(
            select(LeaveBalance).where(
                LeaveBalance.employee_id == target.id,
                LeaveBalance.leave_type_id == leave_type.id,
                LeaveBalance.year == data.year,
            )
        )
        balance = result.scalars().first()
        old_allocated = balance.allocated_days if balance else None
        if balance is None:
            balance = LeaveBalance(
                company_id=target.company_id,
                employee_id=target.id,
                leave_type_id=leave_type.id,
                year=data.year,
                used_days=0,
            )
            db.add(balance)
        balance.allocated_days = data.allocated_days
        balance.leave_type = leave_type
        await db.flush()

        await create_audit_entry(
            db,
            action="allocate",
            entity_type="leave_balance",
            entity_id=balance.id,
            actor_id=viewer.id,
            old_values={"allocated_days": old_allocated},
            new_values={"allocated_days": data.allocated_days, "year": data.year},
        )
        return LeaveBalanceResponse.model_validate(balance)
