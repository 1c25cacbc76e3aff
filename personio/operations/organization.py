# =============================================================================
# personio/operations/organization.py  -  Roster-derived Views
# =============================================================================
#
# Every read in this module is computed from the cached employee roster
# (see load_roster in employees.py), so none of them spends an extra upstream
# call while the roster is fresh:
#
#   employees_directory       flat directory            (roster TTL)
#   employees_by_department   directory grouped         (roster TTL)
#   employees_active          directory, active only    (roster TTL)
#   organization_structure    departments + positions   (organization TTL)
#   organization_departments  per-department counts     (from structure)
#   organization_headcount    headcount statistics      (from structure)
# =============================================================================

from collections import Counter
from datetime import datetime, timezone

from personio.cache import ORGANIZATION_STRUCTURE_KEY
from personio.models import Employee
from personio.operations.base import NoParams, operation
from personio.operations.employees import load_roster

NO_DEPARTMENT = "No Department"
NO_POSITION = "No Position"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def _directory(dispatcher) -> list[dict]:
    roster = await load_roster(dispatcher)
    return [Employee(**entry).to_directory_entry() for entry in roster]


def build_structure(roster: list[dict]) -> dict:
    """Group a flattened roster into departments, sorted by name."""
    departments: dict[str, dict] = {}
    for entry in roster:
        employee = Employee(**entry)
        name = employee.department or NO_DEPARTMENT
        position = employee.position or NO_POSITION
        department = departments.setdefault(
            name,
            {
                "name": name,
                "id": employee.department_id,
                "employees": [],
                "positions": set(),
                "active_count": 0,
                "total_count": 0,
            },
        )
        department["employees"].append(
            {
                "id": employee.id,
                "name": employee.full_name,
                "position": position,
                "status": employee.status,
            }
        )
        department["positions"].add(position)
        department["total_count"] += 1
        if employee.is_active():
            department["active_count"] += 1

    structure = [
        {**department, "positions": sorted(department["positions"])}
        for department in departments.values()
    ]
    structure.sort(key=lambda department: department["name"])
    return {
        "organization": {
            "departments": structure,
            "total_employees": len(roster),
            "total_departments": len(structure),
        },
        "last_updated": _now_iso(),
    }


async def _structure(dispatcher) -> dict:
    async def build() -> dict:
        return build_structure(await load_roster(dispatcher))

    return await dispatcher.read_derived(
        ORGANIZATION_STRUCTURE_KEY, build, ttl=dispatcher.cache.ttl_config.organization
    )


# -----------------------------------------------------------------------------
# personio://employees/*
# -----------------------------------------------------------------------------
@operation("employees_directory", NoParams)
async def employees_directory(dispatcher, params: NoParams) -> dict:
    """Complete employee directory with basic information."""
    directory = await _directory(dispatcher)
    return {"employees": directory, "total": len(directory), "last_updated": _now_iso()}


@operation("employees_by_department", NoParams)
async def employees_by_department(dispatcher, params: NoParams) -> dict:
    """Employees grouped by department."""
    directory = await _directory(dispatcher)
    grouped: dict[str, list[dict]] = {}
    for entry in directory:
        grouped.setdefault(entry["department"] or NO_DEPARTMENT, []).append(entry)

    departments = [
        {"department": name, "employee_count": len(members), "employees": members}
        for name, members in sorted(grouped.items())
    ]
    return {
        "departments": departments,
        "total_departments": len(departments),
        "total_employees": len(directory),
        "last_updated": _now_iso(),
    }


@operation("employees_active", NoParams)
async def employees_active(dispatcher, params: NoParams) -> dict:
    """Currently active employees."""
    directory = await _directory(dispatcher)
    active = [entry for entry in directory if (entry["status"] or "").lower() == "active"]
    percentage = round(len(active) / len(directory) * 100, 1) if directory else 0.0
    return {
        "employees": active,
        "total": len(active),
        "percentage_active": percentage,
        "last_updated": _now_iso(),
    }


# -----------------------------------------------------------------------------
# personio://organization/*
# -----------------------------------------------------------------------------
@operation("organization_structure", NoParams)
async def organization_structure(dispatcher, params: NoParams) -> dict:
    """Organization structure with departments and positions."""
    return await _structure(dispatcher)


@operation("organization_departments", NoParams)
async def organization_departments(dispatcher, params: NoParams) -> dict:
    """List of all departments with employee counts."""
    structure = await _structure(dispatcher)
    departments = [
        {
            "id": department["id"],
            "name": department["name"],
            "employee_count": department["total_count"],
            "active_employee_count": department["active_count"],
            "positions": len(department["positions"]),
            "unique_positions": department["positions"],
        }
        for department in structure["organization"]["departments"]
    ]
    return {
        "departments": departments,
        "total": len(departments),
        "last_updated": structure["last_updated"],
    }


@operation("organization_headcount", NoParams)
async def organization_headcount(dispatcher, params: NoParams) -> dict:
    """Organization headcount statistics."""
    structure = await _structure(dispatcher)
    organization = structure["organization"]
    departments = organization["departments"]

    by_status = Counter(
        employee["status"] or "Unknown"
        for department in departments
        for employee in department["employees"]
    )
    staffed = [department for department in departments if department["total_count"] > 0]
    largest = max(staffed, key=lambda department: department["total_count"], default=None)
    smallest = min(staffed, key=lambda department: department["total_count"], default=None)

    return {
        "statistics": {
            "total_headcount": organization["total_employees"],
            "departments": organization["total_departments"],
            "by_status": dict(by_status),
            "by_department": {d["name"]: d["total_count"] for d in departments},
            "largest_department": (
                {"name": largest["name"], "count": largest["total_count"]} if largest else None
            ),
            "smallest_department": (
                {"name": smallest["name"], "count": smallest["total_count"]} if smallest else None
            ),
        },
        "last_updated": structure["last_updated"],
    }
