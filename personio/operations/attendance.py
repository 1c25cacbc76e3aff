# =============================================================================
# personio/operations/attendance.py  -  Attendance (Time Tracking) Operations
# =============================================================================
#
# list_attendances    attendance entries, always read live
# create_attendance   clock-in/clock-out entry
# update_attendance   change times, break, comment or project
# delete_attendance   remove an entry
# get_projects        projects that attendance can be booked against
#
# Every attendance mutation drops the unparameterized `attendances:{}` key.
# =============================================================================

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from personio.cache import ATTENDANCES, cache_key
from personio.operations.base import (
    DATE_PATTERN,
    TIME_PATTERN,
    NoParams,
    check_date_range,
    operation,
)


class ListAttendancesParams(BaseModel):
    start_date: Optional[str] = Field(None, pattern=DATE_PATTERN)
    end_date: Optional[str] = Field(None, pattern=DATE_PATTERN)
    employee_ids: Optional[list[int]] = None
    project_ids: Optional[list[int]] = None
    limit: int = Field(50, ge=1, le=50)
    offset: int = Field(0, ge=0)

    @model_validator(mode="after")
    def _date_range(self):
        check_date_range(self.start_date, self.end_date)
        return self


class CreateAttendanceParams(BaseModel):
    employee_id: int
    date: str = Field(pattern=DATE_PATTERN)
    start_time: str = Field(pattern=TIME_PATTERN)
    end_time: str = Field(pattern=TIME_PATTERN)
    break_duration: int = Field(0, ge=0)     # minutes
    comment: Optional[str] = None
    project_id: Optional[int] = None

    @model_validator(mode="after")
    def _real_date(self):
        check_date_range(self.date, None)
        return self


class UpdateAttendanceParams(BaseModel):
    attendance_id: int
    start_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    end_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    break_duration: Optional[int] = Field(None, ge=0)
    comment: Optional[str] = None
    project_id: Optional[int] = None


class AttendanceIdParams(BaseModel):
    attendance_id: int


def _duration_minutes(day: str, start: str, end: str, break_minutes: int) -> Optional[int]:
    """Worked minutes; an end before the start means the shift ran past midnight."""
    try:
        started = datetime.fromisoformat(f"{day}T{start}")
        ended = datetime.fromisoformat(f"{day}T{end}")
    except (TypeError, ValueError):
        return None
    if ended < started:
        ended += timedelta(days=1)
    return int((ended - started).total_seconds() // 60) - (break_minutes or 0)


def transform_attendance(item: dict) -> dict:
    attendance = item.get("attributes") if isinstance(item.get("attributes"), dict) else item
    break_minutes = attendance.get("break") or 0
    minutes = _duration_minutes(
        attendance.get("date"),
        attendance.get("start_time"),
        attendance.get("end_time"),
        break_minutes,
    )
    duration = None
    if minutes is not None:
        hours, rest = divmod(minutes, 60)
        duration = {
            "total_minutes": minutes,
            "total_hours": round(minutes / 60, 2),
            "formatted": f"{hours}h {rest}m",
        }

    project = attendance.get("project")
    if isinstance(project, dict):
        project = {"id": project.get("id"), "name": project.get("name")}

    return {
        "id": item.get("id", attendance.get("id")),
        "employee_id": attendance.get("employee"),
        "date": attendance.get("date"),
        "times": {
            "start": attendance.get("start_time"),
            "end": attendance.get("end_time"),
            "break_minutes": break_minutes,
        },
        "duration": duration,
        "project": project or None,
        "comment": attendance.get("comment"),
        "created_at": attendance.get("created_at"),
        "updated_at": attendance.get("updated_at"),
    }


def _invalidate() -> tuple[str, ...]:
    return (cache_key(ATTENDANCES),)


@operation("list_attendances", ListAttendancesParams)
async def list_attendances(dispatcher, params: ListAttendancesParams) -> dict:
    """List attendance records with optional filtering."""
    query = {
        "start_date": params.start_date,
        "end_date": params.end_date,
        "employees": params.employee_ids,
        "projects": params.project_ids,
        "limit": params.limit,
        "offset": params.offset,
    }

    def transform(raw: list[dict]) -> dict:
        attendances = [transform_attendance(item) for item in raw or []]
        return {
            "attendances": attendances,
            "total": len(attendances),
            "limit": params.limit,
            "offset": params.offset,
        }

    return await dispatcher.read(
        None,
        lambda: dispatcher.client.get_attendances(query),
        transform,
        cacheable=False,
    )


@operation("create_attendance", CreateAttendanceParams, mutation=True)
async def create_attendance(dispatcher, params: CreateAttendanceParams) -> dict:
    """Create a new attendance entry (clock in/out)."""
    payload = {
        "employee": params.employee_id,
        "date": params.date,
        "start_time": params.start_time,
        "end_time": params.end_time,
        "break": params.break_duration,
        "comment": params.comment,
        "project_id": params.project_id,
    }
    return await dispatcher.mutate(
        lambda: dispatcher.client.create_attendance(payload),
        lambda raw: {
            "success": True,
            "attendance": transform_attendance(raw or {}),
            "message": "Attendance entry created successfully",
        },
        invalidate=_invalidate(),
    )


@operation("update_attendance", UpdateAttendanceParams, mutation=True)
async def update_attendance(dispatcher, params: UpdateAttendanceParams) -> dict:
    """Update an existing attendance entry."""
    payload = {
        "start_time": params.start_time,
        "end_time": params.end_time,
        "break": params.break_duration,
        "comment": params.comment,
        "project_id": params.project_id,
    }
    return await dispatcher.mutate(
        lambda: dispatcher.client.update_attendance(params.attendance_id, payload),
        lambda raw: {
            "success": True,
            "attendance": transform_attendance(raw or {}),
            "message": "Attendance entry updated successfully",
        },
        invalidate=_invalidate(),
    )


@operation("delete_attendance", AttendanceIdParams, mutation=True)
async def delete_attendance(dispatcher, params: AttendanceIdParams) -> dict:
    """Delete an attendance entry."""
    return await dispatcher.mutate(
        lambda: dispatcher.client.delete_attendance(params.attendance_id),
        lambda _: {"success": True, "message": "Attendance entry deleted successfully"},
        invalidate=_invalidate(),
    )


@operation("get_projects", NoParams)
async def get_projects(dispatcher, params: NoParams) -> dict:
    """Get available projects for time tracking."""
    projects = await dispatcher.read(None, dispatcher.client.get_projects, cacheable=False)
    return {"projects": projects, "total": len(projects)}
