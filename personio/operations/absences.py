# =============================================================================
# personio/operations/absences.py  -  Absence (Time-Off) Operations
# =============================================================================
#
# list_absences            time-off periods, cached for a minute
# create_absence_request   new absence period
# delete_absence           cancel an absence period
# get_absence_types        reference list of time-off types
#
# CACHING RULE:
#   Absence status flips as managers approve and reject requests, so a list
#   filtered by status is never cached.  Unfiltered lists live for
#   ABSENCE_LIST_TTL and are dropped whenever an absence is created or deleted.
# =============================================================================

from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from personio.cache import ABSENCES, cache_key
from personio.operations.base import DATE_PATTERN, NoParams, check_date_range, operation
from personio.operations.policies import ABSENCE_TYPES

ABSENCE_LIST_TTL = 60


class ListAbsencesParams(BaseModel):
    start_date: Optional[str] = Field(None, pattern=DATE_PATTERN)
    end_date: Optional[str] = Field(None, pattern=DATE_PATTERN)
    employee_ids: Optional[list[int]] = None
    status: Optional[Literal["approved", "pending", "rejected", "canceled"]] = None
    limit: int = Field(50, ge=1, le=50)
    offset: int = Field(0, ge=0)

    @model_validator(mode="after")
    def _date_range(self):
        check_date_range(self.start_date, self.end_date)
        return self


class CreateAbsenceParams(BaseModel):
    employee_id: int
    time_off_type_id: int
    start_date: str = Field(pattern=DATE_PATTERN)
    end_date: str = Field(pattern=DATE_PATTERN)
    half_day_start: bool = False
    half_day_end: bool = False
    comment: Optional[str] = None

    @model_validator(mode="after")
    def _date_range(self):
        check_date_range(self.start_date, self.end_date)
        return self


class DeleteAbsenceParams(BaseModel):
    absence_id: int


def _unwrap(item: dict) -> dict:
    """Personio nests records as {"type": ..., "attributes": {...}}."""
    if isinstance(item, dict) and isinstance(item.get("attributes"), dict):
        return item["attributes"]
    return item or {}


def _value(field):
    if isinstance(field, dict) and "value" in field:
        return field["value"]
    return field


def transform_absence(item: dict) -> dict:
    absence = _unwrap(item)
    employee = {key: _value(value) for key, value in _unwrap(absence.get("employee")).items()}
    time_off_type = _unwrap(absence.get("time_off_type"))
    half_day_start = bool(absence.get("half_day_start"))
    half_day_end = bool(absence.get("half_day_end"))

    return {
        "id": absence.get("id"),
        "status": absence.get("status"),
        "employee": {
            "id": employee.get("id"),
            "name": f"{employee.get('first_name') or ''} {employee.get('last_name') or ''}".strip(),
            "email": employee.get("email"),
        },
        "dates": {
            "start": absence.get("start_date"),
            "end": absence.get("end_date"),
            "half_day_start": half_day_start,
            "half_day_end": half_day_end,
        },
        "duration": {
            "days": absence.get("days_count"),
            "is_half_day": half_day_start or half_day_end,
        },
        "type": {
            "id": time_off_type.get("id"),
            "name": time_off_type.get("name"),
            "category": time_off_type.get("category"),
        },
        "comment": absence.get("comment"),
        "created_at": absence.get("created_at"),
        "updated_at": absence.get("updated_at"),
    }


@operation("list_absences", ListAbsencesParams)
async def list_absences(dispatcher, params: ListAbsencesParams) -> dict:
    """List absences with optional filtering by date, employee, and status."""
    query = {
        "start_date": params.start_date,
        "end_date": params.end_date,
        "employees": params.employee_ids,
        "status": params.status,
        "limit": params.limit,
        "offset": params.offset,
    }

    def transform(raw: list[dict]) -> dict:
        absences = [transform_absence(item) for item in raw or []]
        return {
            "absences": absences,
            "total": len(absences),
            "limit": params.limit,
            "offset": params.offset,
        }

    return await dispatcher.read(
        cache_key(ABSENCES, params.model_dump()),
        lambda: dispatcher.client.get_absences(query),
        transform,
        ttl=ABSENCE_LIST_TTL,
        cacheable=params.status is None,
    )


@operation("create_absence_request", CreateAbsenceParams, mutation=True)
async def create_absence_request(dispatcher, params: CreateAbsenceParams) -> dict:
    """Create a new absence/time-off request."""
    payload = params.model_dump()
    return await dispatcher.mutate(
        lambda: dispatcher.client.create_absence(payload),
        lambda raw: {
            "success": True,
            "absence": transform_absence(raw or {}),
            "message": "Absence request created successfully",
        },
        invalidate=(cache_key(ABSENCES),),
    )


@operation("delete_absence", DeleteAbsenceParams, mutation=True)
async def delete_absence(dispatcher, params: DeleteAbsenceParams) -> dict:
    """Cancel/delete an absence request."""
    return await dispatcher.mutate(
        lambda: dispatcher.client.delete_absence(params.absence_id),
        lambda _: {"success": True, "message": "Absence deleted successfully"},
        invalidate=(cache_key(ABSENCES),),
    )


@operation("get_absence_types", NoParams)
async def get_absence_types(dispatcher, params: NoParams) -> dict:
    """Get available time-off types (vacation, sick leave, etc.)."""
    types = [
        {"id": item["id"], "name": item["name"], "category": item["category"]}
        for item in ABSENCE_TYPES
    ]
    return {"absence_types": types, "total": len(types)}
