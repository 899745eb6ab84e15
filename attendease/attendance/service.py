"""Attendance service layer — check in/out, late detection, overrides, holidays.

Business logic:
  - Status derived from check-in time vs. the configurable late cutoff
  - One row per employee per day; re-check-in updates the existing row
  - Admin overrides and backdated requests (submit → approve/reject)
  - Role-scoped reads for self, team and company views
"""

from __future__ import annotations

import calendar
import logging
import uuid
from datetime import date, datetime, time
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from attendease.attendance.models import AttendanceRecord, Holiday, SystemSetting
from attendease.attendance.schemas import (
    AttendanceResponse,
    AttendanceWithEmployee,
    BackdatedAttendanceRequest,
    HolidayCreate,
    HolidayResponse,
    HolidayUpdate,
    MarkAttendanceRequest,
)
from attendease.common.audit import create_audit_entry
from attendease.common.clock import local_today, to_local, utcnow
from attendease.common.constants import (
    LATE_MARK_TIME_KEY,
    RECENT_ATTENDANCE_LIMIT,
    TIME_FORMAT,
    AttendanceStatus,
    UserRole,
)
from attendease.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from attendease.common.filters import apply_filters
from attendease.common.pagination import PaginatedResponse, PaginationParams, paginate
from attendease.common.scoping import Viewer, apply_role_scope, ensure_access
from attendease.config import settings
from attendease.core_hr.models import Profile

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════
# AttendanceService
# ═════════════════════════════════════════════════════════════════════


class AttendanceService:
    """Async attendance operations: check in/out, read, override, backdate."""

    # ── Derived status ──────────────────────────────────────────────

    @staticmethod
    def parse_cutoff(value: str) -> time:
        """Parse an ``HH:MM`` late cutoff."""
        try:
            return datetime.strptime(value.strip(), TIME_FORMAT).time()
        except (AttributeError, ValueError):
            raise ValidationException(
                {"late_mark_time": [f"'{value}' is not a valid HH:MM time."]}
            )

    @staticmethod
    def derive_status(check_in: Optional[datetime], cutoff: time) -> AttendanceStatus:
        """``absent`` without a check-in, ``late`` strictly after *cutoff*, else ``present``.

        The comparison uses the local wall-clock hour and minute of *check_in*;
        seconds are ignored, so 09:30:59 is still on time for a 09:30 cutoff.
        """
        if check_in is None:
            return AttendanceStatus.absent
        local_time = to_local(check_in).time().replace(second=0, microsecond=0)
        if local_time > cutoff:
            return AttendanceStatus.late
        return AttendanceStatus.present

    # ── Late cutoff setting ─────────────────────────────────────────

    @staticmethod
    async def get_late_mark_time(db: AsyncSession) -> str:
        setting = await db.get(SystemSetting, LATE_MARK_TIME_KEY)
        if setting is None:
            return settings.DEFAULT_LATE_MARK_TIME
        return setting.value

    @staticmethod
    async def update_late_mark_time(
        db: AsyncSession,
        viewer: Viewer,
        value: str,
    ) -> str:
        if not viewer.is_elevated:
            raise ForbiddenException("Only admins can change the late cutoff.")
        cutoff = AttendanceService.parse_cutoff(value)
        normalized = cutoff.strftime(TIME_FORMAT)

        setting = await db.get(SystemSetting, LATE_MARK_TIME_KEY)
        old_value = setting.value if setting else None
        if setting is None:
            setting = SystemSetting(
                key=LATE_MARK_TIME_KEY,
                value=normalized,
                description="Check-ins strictly after this local time are marked late.",
                updated_by=viewer.id,
            )
            db.add(setting)
        else:
            setting.value = normalized
            setting.updated_by = viewer.id
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="system_setting",
            entity_id=uuid.uuid5(uuid.NAMESPACE_URL, LATE_MARK_TIME_KEY),
            actor_id=viewer.id,
            old_values={LATE_MARK_TIME_KEY: old_value},
            new_values={LATE_MARK_TIME_KEY: normalized},
        )
        logger.info("Late cutoff set to %s by %s", normalized, viewer.id)
        return normalized

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    async def _get_record(
        db: AsyncSession,
        employee_id: uuid.UUID,
        target_date: date,
    ) -> Optional[AttendanceRecord]:
        result = await db.execute(
            select(AttendanceRecord).where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.date == target_date,
            )
        )
        return result.scalars().first()

    @staticmethod
    async def _load_employee(db: AsyncSession, employee_id: uuid.UUID) -> Profile:
        profile = await db.get(Profile, employee_id)
        if profile is None:
            raise NotFoundException("Employee", employee_id)
        return profile

    @staticmethod
    async def _load_with_scope(
        db: AsyncSession,
        viewer: Viewer,
        record_id: uuid.UUID,
    ) -> AttendanceRecord:
        result = await db.execute(
            select(AttendanceRecord)
            .where(AttendanceRecord.id == record_id)
            .options(selectinload(AttendanceRecord.employee))
            .execution_options(populate_existing=True)
        )
        record = result.scalars().first()
        if record is None:
            raise NotFoundException("AttendanceRecord", record_id)
        ensure_access(viewer, record.employee)
        return record

    # ── Check in (upsert) ───────────────────────────────────────────

    @staticmethod
    async def check_in(
        db: AsyncSession,
        viewer: Viewer,
        *,
        at: Optional[datetime] = None,
        location: Optional[dict[str, Any]] = None,
        notes: Optional[str] = None,
    ) -> AttendanceResponse:
        """Record today's check-in; a second check-in updates the same row."""
        at = at or utcnow()
        today = to_local(at).date()
        cutoff = AttendanceService.parse_cutoff(await AttendanceService.get_late_mark_time(db))
        status = AttendanceService.derive_status(at, cutoff)

        record = await AttendanceService._get_record(db, viewer.id, today)
        if record is None:
            record = AttendanceRecord(
                company_id=viewer.home_company_id,
                employee_id=viewer.id,
                date=today,
            )
            db.add(record)

        record.check_in_time = at
        record.status = status
        record.location = location
        record.notes = notes
        # a live check-in settles any backdated request still pending for the day
        record.pending_approval = False
        record.requestor_role = None
        await db.flush()

        logger.info("Check-in for %s on %s: %s", viewer.id, today, status.value)
        return AttendanceResponse.model_validate(record)

    # ── Check out ───────────────────────────────────────────────────

    @staticmethod
    async def check_out(
        db: AsyncSession,
        viewer: Viewer,
        *,
        at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> AttendanceResponse:
        at = at or utcnow()
        today = to_local(at).date()

        record = await AttendanceService._get_record(db, viewer.id, today)
        if record is None or record.check_in_time is None:
            raise ValidationException({"check_out": ["You need to check in first."]})

        record.check_out_time = at
        if notes is not None:
            record.notes = notes
        await db.flush()
        return AttendanceResponse.model_validate(record)

    # ── Own reads ───────────────────────────────────────────────────

    @staticmethod
    async def get_today(db: AsyncSession, viewer: Viewer) -> Optional[AttendanceResponse]:
        """Today's row, or ``None`` when the caller has not checked in."""
        record = await AttendanceService._get_record(db, viewer.id, local_today())
        if record is None:
            return None
        return AttendanceResponse.model_validate(record)

    @staticmethod
    async def get_recent(
        db: AsyncSession,
        viewer: Viewer,
        limit: int = RECENT_ATTENDANCE_LIMIT,
    ) -> list[AttendanceResponse]:
        result = await db.execute(
            select(AttendanceRecord)
            .where(AttendanceRecord.employee_id == viewer.id)
            .order_by(AttendanceRecord.date.desc())
            .limit(limit)
        )
        return [AttendanceResponse.model_validate(r) for r in result.scalars().all()]

    # ── Scoped list ─────────────────────────────────────────────────

    @staticmethod
    async def list_attendance(
        db: AsyncSession,
        viewer: Viewer,
        pagination: PaginationParams,
        *,
        employee_id: Optional[uuid.UUID] = None,
        status: Optional[AttendanceStatus] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        pending_approval: Optional[bool] = None,
    ) -> PaginatedResponse:
        if from_date and to_date and to_date < from_date:
            raise ValidationException({"to_date": ["to_date must be on or after from_date."]})

        query = (
            select(AttendanceRecord)
            .options(selectinload(AttendanceRecord.employee))
            .execution_options(populate_existing=True)
            .order_by(AttendanceRecord.date.desc(), AttendanceRecord.created_at.desc())
        )
        query = apply_role_scope(
            query, viewer,
            employee_column=AttendanceRecord.employee_id,
            company_column=AttendanceRecord.company_id,
        )
        query = apply_filters(query, AttendanceRecord, {
            "employee_id": employee_id,
            "status": status,
            "date__from": from_date,
            "date__to": to_date,
            "pending_approval": pending_approval,
        })

        return await paginate(db, query, pagination, model=AttendanceRecord, schema=AttendanceWithEmployee)

    # ── Manual override (admin) ─────────────────────────────────────

    @staticmethod
    async def mark_attendance(
        db: AsyncSession,
        viewer: Viewer,
        data: MarkAttendanceRequest,
    ) -> AttendanceResponse:
        """Set an employee's status for a day, creating the row if needed."""
        if not viewer.is_elevated:
            raise ForbiddenException("Only admins can mark attendance.")

        target = await AttendanceService._load_employee(db, data.employee_id)
        ensure_access(viewer, target)
        if viewer.role == UserRole.admin:
            if target.role == UserRole.super_admin:
                raise ForbiddenException("Admins cannot modify a super admin's attendance.")
            if target.id == viewer.id:
                raise ForbiddenException("You cannot modify your own attendance.")

        record = await AttendanceService._get_record(db, target.id, data.date)
        old_status = record.status.value if record else None
        if record is None:
            record = AttendanceRecord(
                company_id=target.company_id,
                employee_id=target.id,
                date=data.date,
            )
            db.add(record)

        if data.status == AttendanceStatus.absent:
            record.check_in_time = None
            record.check_out_time = None
        elif record.check_in_time is None:
            record.check_in_time = utcnow()

        record.status = data.status
        record.pending_approval = False
        record.change_reason = data.reason
        record.updated_by = viewer.id
        await db.flush()

        await create_audit_entry(
            db,
            action="mark",
            entity_type="attendance",
            entity_id=record.id,
            actor_id=viewer.id,
            old_values={"status": old_status},
            new_values={"status": data.status.value, "date": data.date.isoformat(), "reason": data.reason},
        )
        logger.info(
            "Attendance for %s on %s marked %s by %s",
            target.id, data.date, data.status.value, viewer.id,
        )
        return AttendanceResponse.model_validate(record)

    # ── Backdated requests ──────────────────────────────────────────

    @staticmethod
    async def request_backdated(
        db: AsyncSession,
        viewer: Viewer,
        data: BackdatedAttendanceRequest,
    ) -> AttendanceResponse:
        """File attendance for a past date; stays pending until approved."""
        if data.date > local_today():
            raise ValidationException({"date": ["Backdated attendance cannot be in the future."]})

        employee_id = data.employee_id or viewer.id
        if viewer.role == UserRole.employee and employee_id != viewer.id:
            raise ForbiddenException("You can only request attendance for yourself.")
        target = await AttendanceService._load_employee(db, employee_id)
        ensure_access(viewer, target)

        record = await AttendanceService._get_record(db, target.id, data.date)
        if record is not None and not record.pending_approval:
            raise ConflictError("date", data.date.isoformat())
        if record is None:
            record = AttendanceRecord(
                company_id=target.company_id,
                employee_id=target.id,
                date=data.date,
            )
            db.add(record)

        record.status = data.status
        record.notes = data.reason
        record.change_reason = data.reason
        record.pending_approval = True
        record.requestor_role = viewer.role
        record.updated_by = viewer.id
        await db.flush()

        await create_audit_entry(
            db,
            action="request_backdated",
            entity_type="attendance",
            entity_id=record.id,
            actor_id=viewer.id,
            new_values={"status": data.status.value, "date": data.date.isoformat()},
        )
        return AttendanceResponse.model_validate(record)

    @staticmethod
    async def list_pending(db: AsyncSession, viewer: Viewer) -> list[AttendanceWithEmployee]:
        if not viewer.is_elevated:
            raise ForbiddenException("Only admins can review backdated attendance.")
        query = (
            select(AttendanceRecord)
            .where(AttendanceRecord.pending_approval.is_(True))
            .options(selectinload(AttendanceRecord.employee))
            .execution_options(populate_existing=True)
            .order_by(AttendanceRecord.date.desc())
        )
        query = apply_role_scope(
            query, viewer,
            employee_column=AttendanceRecord.employee_id,
            company_column=AttendanceRecord.company_id,
        )
        result = await db.execute(query)
        return [AttendanceWithEmployee.model_validate(r) for r in result.scalars().all()]

    @staticmethod
    async def _load_pending(db: AsyncSession, viewer: Viewer, record_id: uuid.UUID) -> AttendanceRecord:
        if not viewer.is_elevated:
            raise ForbiddenException("Only admins can review backdated attendance.")
        record = await AttendanceService._load_with_scope(db, viewer, record_id)
        if not record.pending_approval:
            raise ValidationException({"pending_approval": ["This entry is not awaiting approval."]})
        return record

    @staticmethod
    async def approve_pending(
        db: AsyncSession,
        viewer: Viewer,
        record_id: uuid.UUID,
    ) -> AttendanceResponse:
        record = await AttendanceService._load_pending(db, viewer, record_id)
        record.pending_approval = False
        record.updated_by = viewer.id
        await db.flush()

        await create_audit_entry(
            db,
            action="approve",
            entity_type="attendance",
            entity_id=record.id,
            actor_id=viewer.id,
            new_values={"pending_approval": False},
        )
        logger.info("Backdated attendance %s approved by %s", record.id, viewer.id)
        return AttendanceResponse.model_validate(record)

    @staticmethod
    async def reject_pending(
        db: AsyncSession,
        viewer: Viewer,
        record_id: uuid.UUID,
    ) -> None:
        """Rejected backdated entries are removed."""
        record = await AttendanceService._load_pending(db, viewer, record_id)
        snapshot = {
            "employee_id": str(record.employee_id),
            "date": record.date.isoformat(),
            "status": record.status.value,
        }
        await db.delete(record)
        await db.flush()

        await create_audit_entry(
            db,
            action="reject",
            entity_type="attendance",
            entity_id=record_id,
            actor_id=viewer.id,
            old_values=snapshot,
        )
        logger.info("Backdated attendance %s rejected by %s", record_id, viewer.id)


# ═════════════════════════════════════════════════════════════════════
# HolidayService
# ═════════════════════════════════════════════════════════════════════


def _project(holiday_date: date, year: int) -> date:
    """Move a recurring holiday onto *year* (Feb 29 falls back to Feb 28)."""
    day = min(holiday_date.day, calendar.monthrange(year, holiday_date.month)[1])
    return holiday_date.replace(year=year, day=day)


class HolidayService:
    """Company holiday calendar."""

    @staticmethod
    async def list_holidays(
        db: AsyncSession,
        viewer: Viewer,
        year: Optional[int] = None,
    ) -> list[HolidayResponse]:
        """Holidays falling in *year*, recurring ones projected onto it."""
        year = year or local_today().year
        query = select(Holiday)
        if viewer.company_id is not None:
            query = query.where(Holiday.company_id == viewer.company_id)

        items: list[HolidayResponse] = []
        for holiday in (await db.execute(query)).scalars().all():
            if holiday.date.year == year:
                items.append(HolidayResponse.model_validate(holiday))
            elif holiday.is_recurring and holiday.date.year < year:
                projected = HolidayResponse.model_validate(holiday)
                projected.date = _project(holiday.date, year)
                items.append(projected)

        items.sort(key=lambda h: (h.date, h.name))
        return items

    @staticmethod
    async def _load(db: AsyncSession, viewer: Viewer, holiday_id: uuid.UUID) -> Holiday:
        holiday = await db.get(Holiday, holiday_id)
        if holiday is None:
            raise NotFoundException("Holiday", holiday_id)
        if viewer.company_id is not None and holiday.company_id != viewer.company_id:
            raise ForbiddenException("This holiday belongs to another company.")
        return holiday

    @staticmethod
    async def _ensure_unique(
        db: AsyncSession,
        company_id: uuid.UUID,
        name: str,
        holiday_date: date,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(Holiday.id).where(
            Holiday.company_id == company_id,
            Holiday.date == holiday_date,
            Holiday.name == name,
        )
        if exclude_id is not None:
            query = query.where(Holiday.id != exclude_id)
        if (await db.execute(query)).scalar() is not None:
            raise ConflictError("name", name)

    @staticmethod
    async def create_holiday(
        db: AsyncSession,
        viewer: Viewer,
        data: HolidayCreate,
    ) -> HolidayResponse:
        company_id = viewer.write_company_id
        name = data.name.strip()
        await HolidayService._ensure_unique(db, company_id, name, data.date)

        holiday = Holiday(
            company_id=company_id,
            name=name,
            date=data.date,
            description=data.description,
            is_recurring=data.is_recurring,
        )
        db.add(holiday)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="holiday",
            entity_id=holiday.id,
            actor_id=viewer.id,
            new_values={"name": name, "date": data.date.isoformat(), "is_recurring": data.is_recurring},
        )
        return HolidayResponse.model_validate(holiday)

    @staticmethod
    async def update_holiday(
        db: AsyncSession,
        viewer: Viewer,
        holiday_id: uuid.UUID,
        data: HolidayUpdate,
    ) -> HolidayResponse:
        holiday = await HolidayService._load(db, viewer, holiday_id)
        changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
        if "name" in changes:
            changes["name"] = changes["name"].strip()

        await HolidayService._ensure_unique(
            db,
            holiday.company_id,
            changes.get("name", holiday.name),
            changes.get("date", holiday.date),
            exclude_id=holiday.id,
        )
        for key, value in changes.items():
            setattr(holiday, key, value)
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="holiday",
            entity_id=holiday.id,
            actor_id=viewer.id,
            new_values={k: (v.isoformat() if isinstance(v, date) else v) for k, v in changes.items()},
        )
        return HolidayResponse.model_validate(holiday)

    @staticmethod
    async def delete_holiday(db: AsyncSession, viewer: Viewer, holiday_id: uuid.UUID) -> None:
        holiday = await HolidayService._load(db, viewer, holiday_id)
        snapshot = {"name": holiday.name, "date": holiday.date.isoformat()}
        await db.delete(holiday)
        await db.flush()

        await create_audit_entry(
            db,
            action="delete",
            entity_type="holiday",
            entity_id=holiday_id,
            actor_id=viewer.id,
            old_values=snapshot,
        )
