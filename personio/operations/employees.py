# =============================================================================
# personio/operations/employees.py  -  Employee Operations
# =============================================================================
#
# list_employees                 paged list, cached per parameter set
# get_employee                   single record, cached per id + attributes
# search_employees               local filter over the cached roster
# get_employee_absence_balance   live balance, never cached
# list_custom_attributes         company-defined attribute catalogue
# update_employee                PATCH, then invalidate employee keys
#
# THE ROSTER:
#   search_employees and the employee/organization resources all need the
#   full employee list.  They share one cached roster read (ROSTER_KEY) so a
#   burst of searches costs a single upstream call per TTL.
# =============================================================================

from typing import Any, Optional

from pydantic import BaseModel, Field

from personio.cache import (
    CUSTOM_ATTRIBUTES_KEY,
    EMPLOYEE,
    EMPLOYEES,
    ORGANIZATION_STRUCTURE_KEY,
    ROSTER_KEY,
    cache_key,
)
from personio.models import Employee
from personio.operations.base import NoParams, operation

# Upper bound for the single roster request
ROSTER_LIMIT = 1000


class ListEmployeesParams(BaseModel):
    limit: int = Field(50, ge=1, le=50)
    offset: int = Field(0, ge=0)
    attributes: Optional[list[str]] = None
    updated_since: Optional[str] = None


class GetEmployeeParams(BaseModel):
    employee_id: int
    attributes: Optional[list[str]] = None


class SearchEmployeesParams(BaseModel):
    query: str = Field(min_length=1)
    attributes: Optional[list[str]] = None
    limit: int = Field(20, ge=1, le=50)


class EmployeeIdParams(BaseModel):
    employee_id: int


class UpdateEmployeeParams(BaseModel):
    employee_id: int
    data: dict[str, Any] = Field(min_length=1)


def employee_key(employee_id: int, attributes: Optional[list[str]] = None) -> str:
    return cache_key(EMPLOYEE, {"employee_id": employee_id, "attributes": attributes})


def _employees(raw: list[dict]) -> list[dict]:
    return [Employee.from_api(item).to_dict() for item in raw or []]


async def load_roster(dispatcher, attributes: Optional[list[str]] = None) -> list[dict]:
    """Every employee as a flattened dict, from cache when possible."""
    key = ROSTER_KEY
    if attributes:
        key = cache_key(EMPLOYEES, {"roster": True, "attributes": attributes})
    params = {"limit": ROSTER_LIMIT, "attributes": attributes}
    return await dispatcher.read(
        key,
        lambda: dispatcher.client.get_employees(params),
        _employees,
    )


@operation("list_employees", ListEmployeesParams)
async def list_employees(dispatcher, params: ListEmployeesParams) -> dict:
    """List employees with pagination and optional attribute selection."""
    query = params.model_dump()

    def transform(raw: list[dict]) -> dict:
        employees = _employees(raw)
        return {
            "employees": employees,
            "total": len(employees),
            "limit": params.limit,
            "offset": params.offset,
        }

    return await dispatcher.read(
        cache_key(EMPLOYEES, query),
        lambda: dispatcher.client.get_employees(query),
        transform,
    )


@operation("get_employee", GetEmployeeParams)
async def get_employee(dispatcher, params: GetEmployeeParams) -> dict:
    """Get one employee by id."""
    return await dispatcher.read(
        employee_key(params.employee_id, params.attributes),
        lambda: dispatcher.client.get_employee(params.employee_id, params.attributes),
        lambda raw: Employee.from_api(raw or {}).to_dict(),
    )


@operation("search_employees", SearchEmployeesParams)
async def search_employees(dispatcher, params: SearchEmployeesParams) -> dict:
    """Search employees by name, email or department."""
    roster = await load_roster(dispatcher, params.attributes)
    matches = [entry for entry in roster if Employee(**entry).matches(params.query)]
    return {
        "employees": matches[: params.limit],
        "total": len(matches),
        "query": params.query,
    }


@operation("get_employee_absence_balance", EmployeeIdParams)
async def get_employee_absence_balance(dispatcher, params: EmployeeIdParams) -> Any:
    """Current absence balances for one employee."""
    # balances move with every approval, so they are always fetched live
    balance = await dispatcher.read(
        None,
        lambda: dispatcher.client.get_employee_absence_balance(params.employee_id),
        cacheable=False,
    )
    return {"employee_id": params.employee_id, "balances": balance}


@operation("list_custom_attributes", NoParams)
async def list_custom_attributes(dispatcher, params: NoParams) -> dict:
    """Company-defined employee attributes (the keys that end up in `extra`)."""

    def transform(raw: list[dict]) -> dict:
        attributes = [
            {
                "key": item.get("key"),
                "label": item.get("label"),
                "type": item.get("type"),
            }
            for item in raw or []
        ]
        return {"attributes": attributes, "total": len(attributes)}

    return await dispatcher.read(
        CUSTOM_ATTRIBUTES_KEY,
        dispatcher.client.get_custom_attributes,
        transform,
        ttl=dispatcher.cache.ttl_config.organization,
    )


@operation("update_employee", UpdateEmployeeParams, mutation=True)
async def update_employee(dispatcher, params: UpdateEmployeeParams) -> dict:
    """Update attributes of one employee."""
    return await dispatcher.mutate(
        lambda: dispatcher.client.update_employee(params.employee_id, params.data),
        lambda raw: Employee.from_api(raw or {}).to_dict(),
        invalidate=(
            employee_key(params.employee_id),
            cache_key(EMPLOYEES),
            ROSTER_KEY,
            ORGANIZATION_STRUCTURE_KEY,
        ),
    )
