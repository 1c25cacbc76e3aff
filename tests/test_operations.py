"""
Tests for the registered Personio operations, run through the dispatcher
against a fake Personio API.
"""

import asyncio
import base64

import pytest

from conftest import employee_payload, ok
from personio.cache import ORGANIZATION_STRUCTURE_KEY, ROSTER_KEY
from personio.errors import VALIDATION_ERROR, ValidationError
from personio.operations import OPERATIONS, documents
from personio.operations.attendance import transform_attendance
from personio.operations.policies import easter_sunday, holidays_for

EMPLOYEES = "/v1/company/employees"
ATTENDANCES = "/v1/company/attendances"


@pytest.fixture
def roster(personio):
    personio.add(
        "GET",
        EMPLOYEES,
        ok(
            [
                employee_payload(1, "Ada", "Lovelace", "Engineering", position="Engineer"),
                employee_payload(2, "Grace", "Hopper", "Engineering", position="Lead"),
                employee_payload(3, "Alan", "Turing", "Research", status="inactive", shirt_size="M"),
                employee_payload(4, "Nobody", "Assigned"),
            ]
        ),
    )


class TestRegistry:
    """Test cases for the operation registry."""

    def test_every_exposed_operation_is_registered(self):
        """Test tool and resource operations are all present."""
        expected = {
            "list_employees", "get_employee", "search_employees",
            "get_employee_absence_balance", "list_custom_attributes", "update_employee",
            "list_absences", "create_absence_request", "delete_absence", "get_absence_types",
            "list_attendances", "create_attendance", "update_attendance", "delete_attendance",
            "get_projects", "list_document_categories", "upload_document",
            "upload_document_base64", "employees_directory", "employees_by_department",
            "employees_active", "organization_structure", "organization_departments",
            "organization_headcount", "policies_absence_types", "policies_working_hours",
            "policies_holidays",
        }
        assert expected <= set(OPERATIONS)

    def test_mutations_are_flagged(self):
        """Test write operations are marked as mutations."""
        mutations = {name for name, op in OPERATIONS.items() if op.mutation}
        assert mutations == {
            "update_employee", "create_absence_request", "delete_absence",
            "create_attendance", "update_attendance", "delete_attendance",
            "upload_document", "upload_document_base64",
        }


class TestEmployees:
    """Test cases for employee operations."""

    @pytest.mark.asyncio
    async def test_list_employees_flattens_attributes(self, context, roster):
        """Test employee attributes are unwrapped and custom ones go to extra."""
        result = await context.execute("list_employees", {})

        assert result["total"] == 4
        alan = result["employees"][2]
        assert alan["first_name"] == "Alan"
        assert alan["department"] == "Research"
        assert alan["extra"] == {"shirt_size": "M"}

    @pytest.mark.asyncio
    async def test_search_uses_one_roster_fetch(self, context, personio, roster):
        """Test consecutive searches share the cached roster."""
        by_name = await context.execute("search_employees", {"query": "grace"})
        by_department = await context.execute("search_employees", {"query": "engineering"})

        assert [e["id"] for e in by_name["employees"]] == [2]
        assert by_department["total"] == 2
        assert len(personio.calls("GET", EMPLOYEES)) == 1
        assert personio.calls("GET", EMPLOYEES)[0].url.params["limit"] == "1000"

    @pytest.mark.asyncio
    async def test_search_requires_query(self, context):
        """Test an empty query is rejected."""
        with pytest.raises(ValidationError):
            await context.execute("search_employees", {"query": ""})

    @pytest.mark.asyncio
    async def test_update_invalidates_employee_views(self, context, personio, roster):
        """Test an update drops the roster, the structure and the record."""
        personio.add("GET", f"{EMPLOYEES}/2", ok(employee_payload(2, "Grace", "Hopper")))
        personio.add("PATCH", f"{EMPLOYEES}/2", ok(employee_payload(2, "Grace", "Hopper", position="CTO")))

        await context.execute("get_employee", {"employee_id": 2})
        await context.execute("organization_structure")
        assert context.cache.has(ROSTER_KEY)
        assert context.cache.has(ORGANIZATION_STRUCTURE_KEY)

        updated = await context.execute("update_employee", {"employee_id": 2, "data": {"position": "CTO"}})

        assert updated["position"] == "CTO"
        assert not context.cache.has(ROSTER_KEY)
        assert not context.cache.has(ORGANIZATION_STRUCTURE_KEY)
        assert not context.cache.has('employee:{"employee_id":2}')

    @pytest.mark.asyncio
    async def test_absence_balance_is_live(self, context, personio):
        """Test balances are fetched on every call."""
        path = f"{EMPLOYEES}/1/absences/balance"
        personio.add("GET", path, ok([{"id": 1, "name": "Vacation", "balance": 12}]))

        await context.execute("get_employee_absence_balance", {"employee_id": 1})
        result = await context.execute("get_employee_absence_balance", {"employee_id": 1})

        assert result["balances"][0]["balance"] == 12
        assert len(personio.calls("GET", path)) == 2


class TestAbsences:
    """Test cases for absence operations."""

    @pytest.mark.asyncio
    async def test_list_absences_transform(self, context, personio):
        """Test time-off periods are reshaped for the caller."""
        personio.add(
            "GET",
            "/v1/company/time-offs",
            ok(
                [
                    {
                        "type": "TimeOffPeriod",
                        "attributes": {
                            "id": 10,
                            "status": "approved",
                            "start_date": "2025-07-01",
                            "end_date": "2025-07-02",
                            "days_count": 1.5,
                            "half_day_start": False,
                            "half_day_end": True,
                            "time_off_type": {"type": "TimeOffType", "attributes": {"id": 1, "name": "Vacation"}},
                            "employee": {
                                "type": "Employee",
                                "attributes": {
                                    "id": {"value": 1},
                                    "first_name": {"value": "Ada"},
                                    "last_name": {"value": "Lovelace"},
                                    "email": {"value": "ada@example.com"},
                                },
                            },
                        },
                    }
                ]
            ),
        )

        result = await context.execute("list_absences", {"employee_ids": [1]})

        absence = result["absences"][0]
        assert absence["employee"] == {"id": 1, "name": "Ada Lovelace", "email": "ada@example.com"}
        assert absence["duration"] == {"days": 1.5, "is_half_day": True}
        assert absence["type"]["name"] == "Vacation"

    @pytest.mark.asyncio
    async def test_create_rejects_reversed_dates(self, context, personio):
        """Test end_date before start_date never reaches upstream."""
        with pytest.raises(ValidationError) as exc_info:
            await context.execute(
                "create_absence_request",
                {"employee_id": 1, "time_off_type_id": 1, "start_date": "2025-07-05", "end_date": "2025-07-01"},
            )

        assert exc_info.value.code == VALIDATION_ERROR
        assert personio.requests == []

    @pytest.mark.asyncio
    async def test_create_rejects_bad_date_format(self, context):
        """Test dates must be YYYY-MM-DD."""
        with pytest.raises(ValidationError):
            await context.execute(
                "create_absence_request",
                {"employee_id": 1, "time_off_type_id": 1, "start_date": "07/01/2025", "end_date": "2025-07-01"},
            )

    @pytest.mark.asyncio
    async def test_absence_types(self, context, personio):
        """Test the reference list of time-off types."""
        result = await context.execute("get_absence_types")

        assert result["total"] == 8
        assert result["absence_types"][0] == {"id": 1, "name": "Annual Leave", "category": "paid"}
        assert personio.requests == []


class TestAttendance:
    """Test cases for attendance operations."""

    def test_duration_with_break(self):
        """Test worked time subtracts the break."""
        result = transform_attendance(
            {"id": 1, "employee": 5, "date": "2025-03-03", "start_time": "09:00", "end_time": "17:30", "break": 30}
        )

        assert result["duration"] == {"total_minutes": 480, "total_hours": 8.0, "formatted": "8h 0m"}

    def test_overnight_shift(self):
        """Test an end time before the start time rolls into the next day."""
        result = transform_attendance(
            {"id": 2, "employee": 5, "date": "2025-03-03", "start_time": "22:00", "end_time": "06:15", "break": 0}
        )

        assert result["duration"]["total_minutes"] == 495
        assert result["duration"]["formatted"] == "8h 15m"

    @pytest.mark.asyncio
    async def test_create_attendance_payload(self, context, personio):
        """Test the upstream body uses Personio's field names."""
        personio.add("POST", "/v1/company/attendances", ok({"id": 9}))

        await context.execute(
            "create_attendance",
            {"employee_id": 5, "date": "2025-03-03", "start_time": "09:00", "end_time": "17:00"},
        )

        assert personio.last_json("POST", "/v1/company/attendances") == {
            "employee": 5,
            "date": "2025-03-03",
            "start_time": "09:00",
            "end_time": "17:00",
            "break": 0,
        }

    @pytest.mark.asyncio
    async def test_invalid_time(self, context):
        """Test times must be HH:MM on a 24h clock."""
        with pytest.raises(ValidationError):
            await context.execute(
                "create_attendance",
                {"employee_id": 5, "date": "2025-03-03", "start_time": "25:00", "end_time": "17:00"},
            )

    @pytest.mark.asyncio
    async def test_mutation_invalidates_list(self, context, personio):
        """Test deleting an attendance drops the unparameterized list key."""
        personio.add("DELETE", "/v1/company/attendances/3", ok(None))
        context.cache.set("attendances:{}", {"attendances": []})

        await context.execute("delete_attendance", {"attendance_id": 3})

        assert not context.cache.has("attendances:{}")

    @pytest.mark.asyncio
    async def test_list_reflects_new_entry(self, context, personio):
        """Test an attendance created between two list calls shows up in the second."""
        entry = {"id": 9, "employee": 5, "date": "2025-03-03", "start_time": "09:00", "end_time": "17:00", "break": 0}
        personio.add("GET", ATTENDANCES, ok([]), ok([entry]))
        personio.add("POST", ATTENDANCES, ok(entry))

        before = await context.execute("list_attendances", {})
        await context.execute(
            "create_attendance",
            {"employee_id": 5, "date": "2025-03-03", "start_time": "09:00", "end_time": "17:00"},
        )
        after = await context.execute("list_attendances", {})

        assert before["total"] == 0
        assert after["total"] == 1
        assert after["attendances"][0]["id"] == 9
        assert len(personio.calls("GET", ATTENDANCES)) == 2
        assert context.cache.keys() == []


class TestDocuments:
    """Test cases for document operations."""

    @pytest.mark.asyncio
    async def test_categories_cached(self, context, personio):
        """Test document categories are fetched once."""
        personio.add("GET", "/v1/company/document-categories", ok([{"id": 1, "name": "Contracts"}]))

        await context.execute("list_document_categories")
        result = await context.execute("list_document_categories")

        assert result == {"categories": [{"id": 1, "name": "Contracts", "required": False}], "total": 1}
        assert len(personio.calls("GET", "/v1/company/document-categories")) == 1

    @pytest.mark.asyncio
    async def test_upload_from_file(self, context, personio, tmp_path):
        """Test the file name defaults to the base name of the path."""
        personio.add("POST", "/v1/company/documents", ok({"id": 3, "file_name": "offer.pdf"}))
        document = tmp_path / "offer.pdf"
        document.write_bytes(b"%PDF-1.7")

        result = await context.execute(
            "upload_document", {"employee_id": 1, "category_id": 2, "file_path": str(document)}
        )

        assert result["success"] is True
        assert b'filename="offer.pdf"' in personio.calls("POST", "/v1/company/documents")[0].content

    @pytest.mark.asyncio
    async def test_upload_reads_file_off_the_event_loop(self, context, personio, tmp_path, monkeypatch):
        """Test the local file is read in a worker thread."""
        personio.add("POST", "/v1/company/documents", ok({"id": 5}))
        document = tmp_path / "payslip.pdf"
        document.write_bytes(b"%PDF-1.7")
        offloaded = []
        real_to_thread = asyncio.to_thread

        async def recording_to_thread(func, *args, **kwargs):
            offloaded.append(func)
            return await real_to_thread(func, *args, **kwargs)

        monkeypatch.setattr(documents.asyncio, "to_thread", recording_to_thread)

        await context.execute(
            "upload_document", {"employee_id": 1, "category_id": 2, "file_path": str(document)}
        )

        assert [(func.__self__, func.__name__) for func in offloaded] == [(document, "read_bytes")]

    @pytest.mark.asyncio
    async def test_upload_directory_is_rejected(self, context, personio, tmp_path):
        """Test a directory path is a validation error."""
        with pytest.raises(ValidationError, match="Not a file"):
            await context.execute(
                "upload_document", {"employee_id": 1, "category_id": 2, "file_path": str(tmp_path)}
            )
        assert personio.requests == []

    @pytest.mark.asyncio
    async def test_upload_missing_file(self, context, personio, tmp_path):
        """Test a missing file is a validation error."""
        with pytest.raises(ValidationError, match="File not found"):
            await context.execute(
                "upload_document",
                {"employee_id": 1, "category_id": 2, "file_path": str(tmp_path / "nope.pdf")},
            )
        assert personio.requests == []

    @pytest.mark.asyncio
    async def test_upload_base64(self, context, personio):
        """Test inline content is decoded before upload."""
        personio.add("POST", "/v1/company/documents", ok({"id": 4}))
        content = base64.b64encode(b"hello world").decode()

        await context.execute(
            "upload_document_base64",
            {"employee_id": 1, "category_id": 2, "file_content": content, "file_name": "note.txt"},
        )

        assert b"hello world" in personio.calls("POST", "/v1/company/documents")[0].content

    @pytest.mark.asyncio
    async def test_upload_invalid_base64(self, context):
        """Test undecodable content is rejected."""
        with pytest.raises(ValidationError, match="base64"):
            await context.execute(
                "upload_document_base64",
                {"employee_id": 1, "category_id": 2, "file_content": "***", "file_name": "x.txt"},
            )


class TestOrganization:
    """Test cases for roster-derived views."""

    @pytest.mark.asyncio
    async def test_structure(self, context, roster):
        """Test departments are grouped and sorted by name."""
        result = await context.execute("organization_structure")

        departments = result["organization"]["departments"]
        assert [d["name"] for d in departments] == ["Engineering", "No Department", "Research"]
        engineering = departments[0]
        assert engineering["total_count"] == 2
        assert engineering["active_count"] == 2
        assert engineering["positions"] == ["Engineer", "Lead"]
        assert result["organization"]["total_employees"] == 4

    @pytest.mark.asyncio
    async def test_views_share_the_roster(self, context, personio, roster):
        """Test all roster-derived resources cost one upstream call."""
        await context.execute("employees_directory")
        await context.execute("employees_by_department")
        await context.execute("employees_active")
        await context.execute("organization_departments")
        await context.execute("organization_headcount")

        assert len(personio.calls("GET", EMPLOYEES)) == 1

    @pytest.mark.asyncio
    async def test_active_and_headcount(self, context, roster):
        """Test active ratio and headcount statistics."""
        active = await context.execute("employees_active")
        headcount = await context.execute("organization_headcount")

        assert active["total"] == 3
        assert active["percentage_active"] == 75.0
        stats = headcount["statistics"]
        assert stats["total_headcount"] == 4
        assert stats["by_status"] == {"active": 3, "inactive": 1}
        assert stats["largest_department"] == {"name": "Engineering", "count": 2}

    @pytest.mark.asyncio
    async def test_update_employee_refreshes_views(self, context, personio):
        """Test roster-derived views are rebuilt after an employee changes department."""
        personio.add(
            "GET",
            EMPLOYEES,
            ok([employee_payload(1, "Ada", "Lovelace", "Engineering")]),
            ok([employee_payload(1, "Ada", "Lovelace", "Research")]),
        )
        personio.add("PATCH", f"{EMPLOYEES}/1", ok(employee_payload(1, "Ada", "Lovelace", "Research")))

        before = await context.execute("organization_structure")
        await context.execute("employees_directory")
        await context.execute("update_employee", {"employee_id": 1, "data": {"department": "Research"}})
        after = await context.execute("organization_structure")
        directory = await context.execute("employees_directory")

        assert [d["name"] for d in before["organization"]["departments"]] == ["Engineering"]
        assert [d["name"] for d in after["organization"]["departments"]] == ["Research"]
        assert directory["employees"][0]["department"] == "Research"
        assert len(personio.calls("GET", EMPLOYEES)) == 2

    @pytest.mark.asyncio
    async def test_empty_roster(self, context, personio):
        """Test an empty company yields zeroes, not a division error."""
        personio.add("GET", EMPLOYEES, ok([]))

        active = await context.execute("employees_active")
        headcount = await context.execute("organization_headcount")

        assert active["percentage_active"] == 0.0
        assert headcount["statistics"]["largest_department"] is None


class TestPolicies:
    """Test cases for policy reference data."""

    def test_easter(self):
        """Test Easter Sunday for known years."""
        assert easter_sunday(2024).isoformat() == "2024-03-31"
        assert easter_sunday(2025).isoformat() == "2025-04-20"

    def test_moveable_holidays_follow_easter(self):
        """Test Easter-relative holidays land on the right dates."""
        by_name = {h["name"]: h["date"] for h in holidays_for(2025)}

        assert by_name["Good Friday"] == "2025-04-18"
        assert by_name["Easter Monday"] == "2025-04-21"
        assert by_name["Ascension Day"] == "2025-05-29"
        assert by_name["Whit Monday"] == "2025-06-09"

    @pytest.mark.asyncio
    async def test_holiday_calendar(self, context):
        """Test the calendar is sorted and counted by type."""
        result = await context.execute("policies_holidays", {"year": 2025})

        dates = [h["date"] for h in result["holidays"]]
        assert dates == sorted(dates)
        assert result["total_holidays"] == 14
        assert result["by_type"] == {"public": 10, "regional": 2, "company": 2}

    @pytest.mark.asyncio
    async def test_absence_policy_is_cached(self, context):
        """Test the absence policy resource is stored under its fixed key."""
        result = await context.execute("policies_absence_types")

        assert result["categories"] == {"paid": 6, "unpaid": 1, "other": 1}
        assert context.cache.has("policies:absence-types")

    @pytest.mark.asyncio
    async def test_working_hours_is_a_copy(self, context):
        """Test callers cannot alter the shared policy table."""
        first = await context.execute("policies_working_hours")
        first["standard_hours"]["per_day"] = 12

        second = await context.execute("policies_working_hours")
        assert second["standard_hours"]["per_day"] == 8
