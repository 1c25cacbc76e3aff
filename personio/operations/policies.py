# =============================================================================
# personio/operations/policies.py  -  Company Policy Reference Data
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Serves the three policy resources: absence types, working hours, and the
#   holiday calendar.  The Personio API has no endpoint for these, so the
#   data is company reference configuration kept right here.
#
# DESIGN NOTE:
#   The reference tables are plain module-level constants.  Swapping them for
#   an upstream source later means touching only the handlers below.
#   Moveable holidays are computed from Easter Sunday for the requested year,
#   so the calendar is correct every year without edits.
# =============================================================================

import copy
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field

from personio.cache import ABSENCE_POLICY_KEY
from personio.operations.base import NoParams, operation


# -----------------------------------------------------------------------------
# Absence types
# -----------------------------------------------------------------------------
ABSENCE_TYPES: list[dict] = [
    {
        "id": 1,
        "name": "Annual Leave",
        "category": "paid",
        "entitlement_days": 25,
        "carryover_allowed": True,
        "carryover_limit": 5,
        "requires_approval": True,
        "advance_notice_days": 14,
        "documentation_required": False,
    },
    {
        "id": 2,
        "name": "Sick Leave",
        "category": "paid",
        "entitlement_days": 10,
        "carryover_allowed": False,
        "requires_approval": False,
        "advance_notice_days": 0,
        "documentation_required": True,
        "documentation_after_days": 3,   # medical note from the third day on
    },
    {
        "id": 3,
        "name": "Personal Day",
        "category": "paid",
        "entitlement_days": 3,
        "carryover_allowed": False,
        "requires_approval": True,
        "advance_notice_days": 2,
        "documentation_required": False,
    },
    {
        "id": 4,
        "name": "Unpaid Leave",
        "category": "unpaid",
        "entitlement_days": None,        # granted case by case
        "carryover_allowed": False,
        "requires_approval": True,
        "advance_notice_days": 30,
        "documentation_required": True,
    },
    {
        "id": 5,
        "name": "Parental Leave",
        "category": "paid",
        "entitlement_days": 90,
        "carryover_allowed": False,
        "requires_approval": True,
        "advance_notice_days": 60,
        "documentation_required": True,
    },
    {
        "id": 6,
        "name": "Bereavement Leave",
        "category": "paid",
        "entitlement_days": 5,
        "carryover_allowed": False,
        "requires_approval": False,
        "advance_notice_days": 0,
        "documentation_required": False,
    },
    {
        "id": 7,
        "name": "Public Holiday",
        "category": "paid",
        "entitlement_days": None,
        "carryover_allowed": False,
        "requires_approval": False,
        "advance_notice_days": 0,
        "documentation_required": False,
    },
    {
        "id": 8,
        "name": "Work from Home",
        "category": "other",
        "entitlement_days": None,
        "carryover_allowed": False,
        "requires_approval": True,
        "advance_notice_days": 1,
        "documentation_required": False,
    },
]


# -----------------------------------------------------------------------------
# Working hours
# -----------------------------------------------------------------------------
WORKING_HOURS_POLICY: dict = {
    "standard_hours": {
        "per_day": 8,
        "per_week": 40,
        "days": ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"],
    },
    "working_time": {
        "start": "09:00",
        "end": "18:00",
        "break_duration": 60,            # minutes
        "flexible_hours": True,
        "core_hours": {"start": "10:00", "end": "16:00"},
    },
    "overtime": {
        "allowed": True,
        "approval_required": True,
        "rate_weekday": 1.5,
        "rate_weekend": 2.0,
        "rate_holiday": 2.5,
        "monthly_limit": 20,             # hours
        "compensation_type": "paid",
    },
    "remote_work": {
        "allowed": True,
        "max_days_per_week": 3,
        "approval_required": True,
        "equipment_provided": True,
    },
}


# -----------------------------------------------------------------------------
# Holidays
# -----------------------------------------------------------------------------
# Fixed-date holidays as (month, day, name, type).  Easter-relative ones are
# (offset from Easter Sunday, name, type).
_FIXED_HOLIDAYS = [
    (1, 1, "New Year's Day", "public"),
    (1, 6, "Epiphany", "public"),
    (5, 1, "Labour Day", "public"),
    (10, 3, "German Unity Day", "public"),
    (10, 31, "Reformation Day", "regional"),
    (11, 1, "All Saints' Day", "regional"),
    (12, 24, "Christmas Eve", "company"),
    (12, 25, "Christmas Day", "public"),
    (12, 26, "Boxing Day", "public"),
    (12, 31, "New Year's Eve", "company"),
]

_EASTER_HOLIDAYS = [
    (-2, "Good Friday", "public"),
    (1, "Easter Monday", "public"),
    (39, "Ascension Day", "public"),
    (50, "Whit Monday", "public"),
]


def easter_sunday(year: int) -> date:
    """Gregorian Easter Sunday (anonymous Gregorian algorithm)."""
    a = year % 19
    b, c = divmod(year, 100)
    d, e = divmod(b, 4)
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i, k = divmod(c, 4)
    l = (32 + 2 * e + 2 * i - h - k) % 7
    m = (a + 11 * h + 22 * l) // 451
    month, day = divmod(h + l - 7 * m + 114, 31)
    return date(year, month, day + 1)


def holidays_for(year: int) -> list[dict]:
    easter = easter_sunday(year)
    holidays = [
        {"date": date(year, month, day).isoformat(), "name": name, "type": kind}
        for month, day, name, kind in _FIXED_HOLIDAYS
    ]
    holidays += [
        {"date": (easter + timedelta(days=offset)).isoformat(), "name": name, "type": kind}
        for offset, name, kind in _EASTER_HOLIDAYS
    ]
    return sorted(holidays, key=lambda holiday: holiday["date"])


def _count_by(items: list[dict], field: str, values: tuple[str, ...]) -> dict[str, int]:
    return {value: sum(1 for item in items if item[field] == value) for value in values}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class HolidayParams(BaseModel):
    year: Optional[int] = Field(None, ge=1583, le=4099)


@operation("policies_absence_types", NoParams)
async def policies_absence_types(dispatcher, params: NoParams) -> dict:
    """Available absence and time-off types with policies."""

    async def build() -> dict:
        return {
            "absence_types": [dict(item) for item in ABSENCE_TYPES],
            "total": len(ABSENCE_TYPES),
            "categories": _count_by(ABSENCE_TYPES, "category", ("paid", "unpaid", "other")),
            "last_updated": _now_iso(),
        }

    return await dispatcher.read_derived(
        ABSENCE_POLICY_KEY, build, ttl=dispatcher.cache.ttl_config.policies
    )


@operation("policies_working_hours", NoParams)
async def policies_working_hours(dispatcher, params: NoParams) -> dict:
    """Standard working hours and overtime policies."""
    return {**copy.deepcopy(WORKING_HOURS_POLICY), "last_updated": _now_iso()}


@operation("policies_holidays", HolidayParams)
async def policies_holidays(dispatcher, params: HolidayParams) -> dict:
    """Company holidays and observances."""
    year = params.year or date.today().year
    holidays = holidays_for(year)
    return {
        "year": year,
        "holidays": holidays,
        "total_holidays": len(holidays),
        "by_type": _count_by(holidays, "type", ("public", "regional", "company")),
        "last_updated": _now_iso(),
    }
