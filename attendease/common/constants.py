"""Enums and constants for AttendEase — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    reporting_manager = "reporting_manager"
    admin = "admin"
    super_admin = "super_admin"


# Higher rank = more privilege
ROLE_RANK: dict[UserRole, int] = {
    UserRole.employee: 1,
    UserRole.reporting_manager: 2,
    UserRole.admin: 3,
    UserRole.super_admin: 4,
}

ELEVATED_ROLES = (UserRole.admin, UserRole.super_admin)
APPROVER_ROLES = (UserRole.reporting_manager, UserRole.admin, UserRole.super_admin)


# ── Attendance ──────────────────────────────────────────────────────

class AttendanceStatus(str, enum.Enum):
    present = "present"
    absent = "absent"
    late = "late"
    half_day = "half_day"


# Statuses that count as "attended" in rates and reports
ATTENDED_STATUSES = (AttendanceStatus.present, AttendanceStatus.late)


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


# Leave-type names used to bucket report totals
ANNUAL_LEAVE = "Annual Leave"
SICK_LEAVE = "Sick Leave"
PERSONAL_LEAVE = "Personal Leave"


# ── Settings keys ───────────────────────────────────────────────────

LATE_MARK_TIME_KEY = "late_mark_time"


# ── Role-based permissions ──────────────────────────────────────────

PERMISSIONS: dict[UserRole, list[str]] = {
    UserRole.employee: [
        "profile:read_own",
        "profile:update_own",
        "attendance:check_in",
        "attendance:read_own",
        "attendance:request_backdated",
        "leave:request",
        "leave:read_own",
        "holiday:read",
    ],
    UserRole.reporting_manager: [
        "profile:read_own",
        "profile:update_own",
        "profile:read_team",
        "attendance:check_in",
        "attendance:read_own",
        "attendance:read_team",
        "attendance:request_backdated",
        "leave:request",
        "leave:read_own",
        "leave:read_team",
        "leave:approve",
        "leave:reject",
        "holiday:read",
        "report:team",
    ],
    UserRole.admin: [
        "profile:read_own",
        "profile:update_own",
        "profile:read_company",
        "profile:create",
        "profile:update",
        "profile:deactivate",
        "team:manage",
        "attendance:check_in",
        "attendance:read_company",
        "attendance:mark",
        "attendance:approve_backdated",
        "leave:request",
        "leave:read_company",
        "leave:approve",
        "leave:reject",
        "leave:configure",
        "holiday:read",
        "holiday:manage",
        "settings:update",
        "report:company",
    ],
    UserRole.super_admin: [
        "profile:read_own",
        "profile:update_own",
        "profile:read_all",
        "profile:create",
        "profile:update",
        "profile:deactivate",
        "team:manage",
        "company:manage",
        "attendance:check_in",
        "attendance:read_all",
        "attendance:mark",
        "attendance:approve_backdated",
        "leave:request",
        "leave:auto_approve",
        "leave:read_all",
        "leave:approve",
        "leave:reject",
        "leave:configure",
        "holiday:read",
        "holiday:manage",
        "settings:update",
        "report:all",
    ],
}

# ── Misc constants ──────────────────────────────────────────────────

TIME_FORMAT = "%H:%M"
RECENT_ATTENDANCE_LIMIT = 30
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
