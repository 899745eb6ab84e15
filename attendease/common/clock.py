"""Time helpers — UTC storage, local (company) wall-clock for attendance rules."""

from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from attendease.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def local_zone() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def to_local(value: datetime) -> datetime:
    """Convert a stored timestamp to local wall-clock time.

    Naive values (SQLite round-trips drop tzinfo) are treated as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(local_zone())


def local_today() -> date:
    """Current date in the configured timezone."""
    return datetime.now(local_zone()).date()
