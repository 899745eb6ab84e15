"""Aggregate report metrics — pure reductions over fetched rows."""

from __future__ import annotations

import calendar
import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Iterable, Optional

from attendease.common.constants import (
    ANNUAL_LEAVE,
    ATTENDED_STATUSES,
    PERSONAL_LEAVE,
    SICK_LEAVE,
    AttendanceStatus,
    LeaveStatus,
)
from attendease.common.exceptions import ValidationException

PERIOD_MONTHS = {"month": 1, "quarter": 3, "year": 12}
PERIODS = ("week", *PERIOD_MONTHS)


def percentage(part: int, total: int) -> float:
    """``part / total * 100``; 0.0 when *total* is 0."""
    if not total:
        return 0.0
    return part / total * 100


def attendance_rate(present: int, total: int) -> int:
    """Whole-number attendance percentage, rounded half up; 0 when *total* is 0."""
    if not total:
        return 0
    return math.floor(percentage(present, total) + 0.5)


@dataclass
class AttendanceSummary:
    present: int = 0
    late: int = 0
    absent: int = 0
    half_day: int = 0
    total: int = 0

    @property
    def rate(self) -> int:
        return attendance_rate(self.present, self.total)


def summarize_attendance(statuses: Iterable[AttendanceStatus]) -> AttendanceSummary:
    """Count statuses; ``present`` includes late arrivals."""
    summary = AttendanceSummary()
    for status in statuses:
        summary.total += 1
        if status in ATTENDED_STATUSES:
            summary.present += 1
        if status == AttendanceStatus.late:
            summary.late += 1
        elif status == AttendanceStatus.absent:
            summary.absent += 1
        elif status == AttendanceStatus.half_day:
            summary.half_day += 1
    return summary


@dataclass
class LeaveTotals:
    annual: int = 0
    sick: int = 0
    personal: int = 0
    other: int = 0
    days: int = 0

    @property
    def total(self) -> int:
        return self.annual + self.sick + self.personal + self.other


_BUCKETS = {ANNUAL_LEAVE: "annual", SICK_LEAVE: "sick", PERSONAL_LEAVE: "personal"}


def bucket_leave_totals(requests: Iterable[tuple[Optional[str], Any, int]]) -> LeaveTotals:
    """Count approved requests by leave-type name.

    *requests* yields ``(leave_type_name, status, total_days)``; names other
    than the three standard types (or no type at all) land in ``other``.
    ``days`` sums the approved ``total_days`` across all buckets.
    """
    totals = LeaveTotals()
    for name, status, days in requests:
        if status != LeaveStatus.approved:
            continue
        bucket = _BUCKETS.get(name or "", "other")
        setattr(totals, bucket, getattr(totals, bucket) + 1)
        totals.days += days
    return totals


def _shift_months(day: date, months: int) -> date:
    month_index = day.year * 12 + day.month - 1 - months
    year, month = divmod(month_index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def date_range(period: str, today: date) -> tuple[date, date]:
    """Trailing window ending *today* for ``week``, ``month``, ``quarter`` or ``year``."""
    if period == "week":
        return today - timedelta(days=7), today
    if period in PERIOD_MONTHS:
        return _shift_months(today, PERIOD_MONTHS[period]), today
    raise ValidationException({"period": [f"Period must be one of: {', '.join(PERIODS)}."]})
