# =============================================================================
# personio/client.py  -  Upstream Personio HTTP Client
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Wraps the Personio REST endpoints the server needs.  Each method issues
#   one HTTP call and returns the unwrapped `data` member of Personio's
#   {"success": ..., "data": ...} envelope.
#
# WHERE ERRORS ARE NORMALIZED:
#   _request() is the boundary where httpx exceptions are first caught.  It
#   hands them to the ErrorNormalizer and raises the resulting PersonioError,
#   so nothing above this layer ever sees a raw httpx exception.
#
# WHAT THIS CLIENT DOES NOT DO:
#   No caching, no throttling, no retries.  The dispatcher wraps calls in the
#   ThrottledExecutor and decides what gets cached.
# =============================================================================

import logging
from typing import Any, Optional

import httpx

from personio.auth import CredentialBroker
from personio.errors import ErrorNormalizer

logger = logging.getLogger(__name__)


def _query_params(params: Optional[dict]) -> list[tuple[str, Any]]:
    """Drop empty values and encode lists the way Personio expects (key[]=v)."""
    pairs: list[tuple[str, Any]] = []
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            pairs.extend((f"{key}[]", item) for item in value)
        elif isinstance(value, bool):
            pairs.append((key, "true" if value else "false"))
        else:
            pairs.append((key, value))
    return pairs


def _drop_none(payload: dict) -> dict:
    return {key: value for key, value in payload.items() if value is not None}


class PersonioClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        broker: CredentialBroker,
        normalizer: Optional[ErrorNormalizer] = None,
    ):
        self._http = http
        self.broker = broker
        self.normalizer = normalizer or ErrorNormalizer(secrets=broker.secrets)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
        data: Optional[dict] = None,
        files: Optional[dict] = None,
    ) -> Any:
        headers = await self.broker.get_auth_headers()
        if files is not None:
            # httpx sets the multipart boundary itself
            headers.pop("Content-Type", None)

        try:
            response = await self._http.request(
                method,
                path,
                params=_query_params(params),
                json=json,
                data=data,
                files=files,
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            error = self.normalizer.to_exception(exc)
            logger.warning(f"{method} {path} failed: {error.code}")
            raise error from None

        if response.status_code == 204 or not response.content:
            return None
        try:
            payload = response.json()
        except ValueError as exc:
            raise self.normalizer.to_exception(exc) from None
        if isinstance(payload, dict) and "data" in payload:
            return payload["data"]
        return payload

    # -------------------------------------------------------------------------
    # Employees
    # -------------------------------------------------------------------------
    async def get_employees(self, params: Optional[dict] = None) -> list[dict]:
        return await self._request("GET", "/v1/company/employees", params=params) or []

    async def get_employee(self, employee_id: int, attributes: Optional[list[str]] = None) -> dict:
        return await self._request(
            "GET", f"/v1/company/employees/{employee_id}", params={"attributes": attributes}
        )

    async def update_employee(self, employee_id: int, data: dict) -> dict:
        return await self._request(
            "PATCH", f"/v1/company/employees/{employee_id}", json={"employee": data}
        )

    async def get_employee_absence_balance(self, employee_id: int) -> Any:
        return await self._request("GET", f"/v1/company/employees/{employee_id}/absences/balance")

    async def get_custom_attributes(self) -> list[dict]:
        return await self._request("GET", "/v1/company/employees/custom-attributes") or []

    # -------------------------------------------------------------------------
    # Absences
    # -------------------------------------------------------------------------
    async def get_absences(self, params: Optional[dict] = None) -> list[dict]:
        return await self._request("GET", "/v1/company/time-offs", params=params) or []

    async def create_absence(self, data: dict) -> dict:
        return await self._request("POST", "/v1/company/absence-periods", json=_drop_none(data))

    async def delete_absence(self, absence_id: int) -> None:
        await self._request("DELETE", f"/v1/company/absence-periods/{absence_id}")

    # -------------------------------------------------------------------------
    # Attendances
    # -------------------------------------------------------------------------
    async def get_attendances(self, params: Optional[dict] = None) -> list[dict]:
        return await self._request("GET", "/v1/company/attendances", params=params) or []

    async def create_attendance(self, data: dict) -> dict:
        return await self._request("POST", "/v1/company/attendances", json=_drop_none(data))

    async def update_attendance(self, attendance_id: int, data: dict) -> dict:
        return await self._request(
            "PATCH", f"/v1/company/attendances/{attendance_id}", json=_drop_none(data)
        )

    async def delete_attendance(self, attendance_id: int) -> None:
        await self._request("DELETE", f"/v1/company/attendances/{attendance_id}")

    async def get_projects(self) -> list[dict]:
        return await self._request("GET", "/v1/company/attendances/projects") or []

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------
    async def get_document_categories(self) -> list[dict]:
        return await self._request("GET", "/v1/company/document-categories") or []

    async def upload_document(
        self, employee_id: int, category_id: int, content: bytes, file_name: str
    ) -> dict:
        return await self._request(
            "POST",
            "/v1/company/documents",
            data={"employee_id": str(employee_id), "category_id": str(category_id)},
            files={"file": (file_name, content)},
        )

    async def aclose(self) -> None:
        """Revoke any bearer token; the shared HTTP client is closed by its owner."""
        await self.broker.revoke()
