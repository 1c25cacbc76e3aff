# =============================================================================
# personio_mcp/server.py  -  FastMCP Server (tools, resources, prompts)
# =============================================================================
#
# WHAT THIS FILE DOES:
#   Exposes every Personio operation over MCP.  Each tool and resource is a
#   thin wrapper: it logs the call, hands the arguments to
#   RequestDispatcher.execute(), and returns the result dict.
#
# HOW IT WORKS (the flow):
#   1. The MCP client calls a tool by name (e.g., "list_absences")
#   2. FastMCP routes the call to the matching function below
#   3. The function calls context.execute(operation_name, params)
#   4. The dispatcher validates, checks the cache, throttles, calls Personio
#   5. The result dict goes back to the client as JSON
#
# ERRORS:
#   A failed call surfaces as ToolError (tools) or ResourceError (resources)
#   with the text "Error: <message>\nCode: <code>".  The message has already
#   been normalized and scrubbed of credentials by the core.
#
# TOOL NAMING CONVENTIONS:
#   - list_* / get_* / search_*   -> reads (cached where it makes sense)
#   - create_* / update_* / delete_* / upload_*   -> writes
# =============================================================================

import json
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ResourceError, ToolError

from personio.context import PersonioContext
from personio.errors import PersonioError
from personio.models import ErrorDescriptor

logger = logging.getLogger("personio_mcp")

SERVER_NAME = "personio-mcp"

# =============================================================================
# Logging Setup
# =============================================================================
# We log to STDERR because the MCP server talks to its client over STDOUT
# (stdio transport).  Anything printed to stdout would corrupt the protocol.
#
# ANSI COLOR CODES:
#     - CYAN for incoming requests (tool name + parameters)
#     - GREEN for response JSON
#     - YELLOW for intermediate status/progress messages
# =============================================================================
_CYAN = "\033[36m"
_GREEN = "\033[32m"
_YELLOW = "\033[33m"
_RESET = "\033[0m"

# Responses can be whole employee rosters; only the head goes to the log
_MAX_LOGGED_RESPONSE = 500


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... ({len(text)} chars)"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [MCP] %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def _log_request(name: str, **params) -> None:
    """Log an incoming call with its parameters in CYAN."""
    param_str = ", ".join(
        f"{k}={_truncate(repr(v), 80)}" for k, v in params.items() if v is not None
    )
    logger.info(f"{_CYAN}{name} called with: {param_str}{_RESET}")


def _log_status(message: str) -> None:
    """Log an intermediate status message in YELLOW."""
    logger.info(f"{_YELLOW}  → {message}{_RESET}")


def _log_response(name: str, result: Any) -> Any:
    """Log the response as compact (truncated) JSON in GREEN, then return it."""
    text = _truncate(json.dumps(result, separators=(",", ":"), default=str), _MAX_LOGGED_RESPONSE)
    logger.info(f"{_GREEN}  ← {name} response: {text}{_RESET}")
    return result


def format_error(descriptor: ErrorDescriptor) -> str:
    return f"Error: {descriptor.message}\nCode: {descriptor.code}"


# =============================================================================
# Resources
# =============================================================================
# URI -> (operation name, display name, description)
RESOURCE_OPERATIONS: dict[str, tuple[str, str, str]] = {
    "personio://employees/directory": (
        "employees_directory",
        "Employee Directory",
        "Complete employee directory with basic information",
    ),
    "personio://employees/by-department": (
        "employees_by_department",
        "Employees by Department",
        "Employees grouped by department",
    ),
    "personio://employees/active": (
        "employees_active",
        "Active Employees",
        "List of currently active employees",
    ),
    "personio://organization/structure": (
        "organization_structure",
        "Organization Structure",
        "Hierarchical organization structure with departments and teams",
    ),
    "personio://organization/departments": (
        "organization_departments",
        "Department List",
        "List of all departments with employee counts",
    ),
    "personio://organization/headcount": (
        "organization_headcount",
        "Headcount Statistics",
        "Organization headcount statistics",
    ),
    "personio://policies/absence-types": (
        "policies_absence_types",
        "Absence Types",
        "Available absence and time-off types with policies",
    ),
    "personio://policies/working-hours": (
        "policies_working_hours",
        "Working Hours Policy",
        "Standard working hours and overtime policies",
    ),
    "personio://policies/holidays": (
        "policies_holidays",
        "Holiday Calendar",
        "Company holidays and observances",
    ),
}


def _resource_reader(context: PersonioContext, uri: str, operation_name: str):
    async def read() -> str:
        _log_request(uri)
        try:
            result = await context.execute(operation_name)
        except PersonioError as exc:
            _log_status(f"{exc.code}: {exc.message}")
            raise ResourceError(format_error(exc.descriptor)) from None
        _log_response(uri, result)
        return json.dumps(result, indent=2, default=str)

    read.__name__ = operation_name
    return read


# =============================================================================
# Prompts
# =============================================================================
def absence_request_prompt(
    employee_name: str, start_date: str, end_date: str, reason: Optional[str] = None
) -> str:
    lines = [
        f"Prepare an absence request for {employee_name}.",
        f"Period: {start_date} to {end_date}.",
    ]
    if reason:
        lines.append(f"Reason: {reason}.")
    lines += [
        "",
        "Steps:",
        "1. Use search_employees to find the employee id.",
        "2. Use get_absence_types to pick the matching time-off type.",
        "3. Use get_employee_absence_balance to confirm enough days remain.",
        "4. Use create_absence_request with the dates above.",
        "Summarize the request and the remaining balance when done.",
    ]
    return "\n".join(lines)


def performance_review_prompt(employee_name: str, review_period: str) -> str:
    return "\n".join(
        [
            f"Draft a performance review for {employee_name} covering {review_period}.",
            "",
            "Gather context first:",
            "- search_employees / get_employee for position and department",
            "- list_attendances for the review period",
            "- list_absences for the review period",
            "",
            "Structure the review as:",
            "1. Summary",
            "2. Key achievements",
            "3. Areas for development",
            "4. Goals for the next period",
        ]
    )


# =============================================================================
# Server factory
# =============================================================================
def create_server(context: PersonioContext) -> FastMCP:
    """Build the FastMCP server around an already-configured context."""

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[None]:
        logger.info(f"{SERVER_NAME} started")
        try:
            yield
        finally:
            await context.aclose()
            logger.info(f"{SERVER_NAME} stopped")

    mcp = FastMCP(SERVER_NAME, lifespan=lifespan)

    async def call(operation_name: str, **params) -> Any:
        _log_request(operation_name, **params)
        arguments = {key: value for key, value in params.items() if value is not None}
        try:
            result = await context.execute(operation_name, arguments)
        except PersonioError as exc:
            _log_status(f"{exc.code}: {exc.message}")
            raise ToolError(format_error(exc.descriptor)) from None
        return _log_response(operation_name, result)

    # -------------------------------------------------------------------------
    # Employees
    # -------------------------------------------------------------------------
    @mcp.tool()
    async def list_employees(
        limit: int = 50,
        offset: int = 0,
        attributes: Optional[list[str]] = None,
        updated_since: Optional[str] = None,
    ) -> dict:
        """List employees with pagination.

        Args:
            limit: Number of results to return (1-50).
            offset: Number of results to skip.
            attributes: Specific employee attributes to return.
            updated_since: Only employees changed since this ISO date.
        """
        return await call(
            "list_employees",
            limit=limit,
            offset=offset,
            attributes=attributes,
            updated_since=updated_since,
        )

    @mcp.tool()
    async def get_employee(employee_id: int, attributes: Optional[list[str]] = None) -> dict:
        """Get detailed information about one employee."""
        return await call("get_employee", employee_id=employee_id, attributes=attributes)

    @mcp.tool()
    async def search_employees(
        query: str, attributes: Optional[list[str]] = None, limit: int = 20
    ) -> dict:
        """Search employees by name, email, or department.

        WHEN TO CALL THIS: whenever you have a person's name but not their
        employee id.  Other employee tools need the id.
        """
        return await call("search_employees", query=query, attributes=attributes, limit=limit)

    @mcp.tool()
    async def get_employee_absence_balance(employee_id: int) -> dict:
        """Get the current absence balances of an employee."""
        return await call("get_employee_absence_balance", employee_id=employee_id)

    @mcp.tool()
    async def list_custom_attributes() -> dict:
        """List the company-defined employee attributes."""
        return await call("list_custom_attributes")

    @mcp.tool()
    async def update_employee(employee_id: int, data: dict[str, Any]) -> dict:
        """Update employee attributes.

        Args:
            employee_id: ID of the employee to update.
            data: Attribute names mapped to their new values.
        """
        return await call("update_employee", employee_id=employee_id, data=data)

    # -------------------------------------------------------------------------
    # Absences
    # -------------------------------------------------------------------------
    @mcp.tool()
    async def list_absences(
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        employee_ids: Optional[list[int]] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> dict:
        """List absences with optional filtering by date, employee, and status.

        Args:
            start_date: Start date for filtering (YYYY-MM-DD).
            end_date: End date for filtering (YYYY-MM-DD).
            employee_ids: Filter by specific employee IDs.
            status: One of approved, pending, rejected, canceled.
            limit: Number of results to return (1-50).
            offset: Number of results to skip.
        """
        return await call(
            "list_absences",
            start_date=start_date,
            end_date=end_date,
            employee_ids=employee_ids,
            status=status,
            limit=limit,
            offset=offset,
        )

    @mcp.tool()
    async def create_absence_request(
        employee_id: int,
        time_off_type_id: int,
        start_date: str,
        end_date: str,
        half_day_start: bool = False,
        half_day_end: bool = False,
        comment: Optional[str] = None,
    ) -> dict:
        """Create a new absence/time-off request.

        Dates are YYYY-MM-DD; end_date must not be before start_date.
        Use get_absence_types to find time_off_type_id.
        """
        return await call(
            "create_absence_request",
            employee_id=employee_id,
            time_off_type_id=time_off_type_id,
            start_date=start_date,
            end_date=end_date,
            half_day_start=half_day_start,
            half_day_end=half_day_end,
            comment=comment,
        )

    @mcp.tool()
    async def delete_absence(absence_id: int) -> dict:
        """Cancel/delete an absence request."""
        return await call("delete_absence", absence_id=absence_id)

    @mcp.tool()
    async def get_absence_types() -> dict:
        """Get available time-off types (vacation, sick leave, etc.)."""
        return await call("get_absence_types")

    # -------------------------------------------------------------------------
    # Attendance
    # -------------------------------------------------------------------------
    @mcp.tool()
    async def list_attendances(
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        employee_ids: Optional[list[int]] = None,
        project_ids: Optional[list[int]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> dict:
        """List attendance records with optional filtering."""
        return await call(
            "list_attendances",
            start_date=start_date,
            end_date=end_date,
            employee_ids=employee_ids,
            project_ids=project_ids,
            limit=limit,
            offset=offset,
        )

    @mcp.tool()
    async def create_attendance(
        employee_id: int,
        date: str,
        start_time: str,
        end_time: str,
        break_duration: int = 0,
        comment: Optional[str] = None,
        project_id: Optional[int] = None,
    ) -> dict:
        """Create a new attendance entry (clock in/out).

        Args:
            employee_id: ID of the employee.
            date: Date of attendance (YYYY-MM-DD).
            start_time: Start time (HH:MM).
            end_time: End time (HH:MM); earlier than start_time means overnight.
            break_duration: Break duration in minutes.
            comment: Optional comment.
            project_id: Optional project ID (see get_projects).
        """
        return await call(
            "create_attendance",
            employee_id=employee_id,
            date=date,
            start_time=start_time,
            end_time=end_time,
            break_duration=break_duration,
            comment=comment,
            project_id=project_id,
        )

    @mcp.tool()
    async def update_attendance(
        attendance_id: int,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        break_duration: Optional[int] = None,
        comment: Optional[str] = None,
        project_id: Optional[int] = None,
    ) -> dict:
        """Update an existing attendance entry.  Omitted fields are left unchanged."""
        return await call(
            "update_attendance",
            attendance_id=attendance_id,
            start_time=start_time,
            end_time=end_time,
            break_duration=break_duration,
            comment=comment,
            project_id=project_id,
        )

    @mcp.tool()
    async def delete_attendance(attendance_id: int) -> dict:
        """Delete an attendance entry."""
        return await call("delete_attendance", attendance_id=attendance_id)

    @mcp.tool()
    async def get_projects() -> dict:
        """Get available projects for time tracking."""
        return await call("get_projects")

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------
    @mcp.tool()
    async def list_document_categories() -> dict:
        """List available document categories."""
        return await call("list_document_categories")

    @mcp.tool()
    async def upload_document(
        employee_id: int, category_id: int, file_path: str, file_name: Optional[str] = None
    ) -> dict:
        """Upload a file from the server's filesystem to an employee profile.

        file_name defaults to the base name of file_path.
        """
        return await call(
            "upload_document",
            employee_id=employee_id,
            category_id=category_id,
            file_path=file_path,
            file_name=file_name,
        )

    @mcp.tool()
    async def upload_document_base64(
        employee_id: int, category_id: int, file_content: str, file_name: str
    ) -> dict:
        """Upload a base64-encoded document to an employee profile."""
        return await call(
            "upload_document_base64",
            employee_id=employee_id,
            category_id=category_id,
            file_content=file_content,
            file_name=file_name,
        )

    # -------------------------------------------------------------------------
    # Resources and prompts
    # -------------------------------------------------------------------------
    for uri, (operation_name, name, description) in RESOURCE_OPERATIONS.items():
        mcp.resource(uri, name=name, description=description, mime_type="application/json")(
            _resource_reader(context, uri, operation_name)
        )

    mcp.prompt(name="absence_request", description="Create a well-formatted absence request")(
        absence_request_prompt
    )
    mcp.prompt(name="performance_review", description="Generate a performance review template")(
        performance_review_prompt
    )

    return mcp
