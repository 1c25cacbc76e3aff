"""
Shared fixtures: a fake Personio API on httpx.MockTransport and a manual clock.
"""

import json
from collections.abc import Callable
from typing import Any, Optional, Union

import httpx
import pytest
import pytest_asyncio

from personio.config import PersonioConfig
from personio.context import PersonioContext

BASE_URL = "https://api.personio.test"
STATIC_KEY = "static-app-id-123"
CLIENT_ID = "client-abc"
CLIENT_SECRET = "secret-xyz"

Responder = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePersonio:
    """Route table keyed by (method, path); records every request it sees."""

    def __init__(self):
        self.routes: dict[tuple, list[Responder]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, *responses: Responder) -> None:
        """Queue responses for a route; the last one repeats forever."""
        self.routes[(method.upper(), path)] = list(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responses = self.routes.get((request.method, request.url.path))
        if not responses:
            return httpx.Response(404, json={"success": False, "error": {"message": "Not found"}})
        responder = responses.pop(0) if len(responses) > 1 else responses[0]
        if callable(responder):
            return responder(request)
        return responder

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def last_json(self, method: str, path: str) -> Optional[Any]:
        matching = self.calls(method, path)
        return json.loads(matching[-1].content) if matching else None


def ok(data: Any, status_code: int = 200) -> httpx.Response:
    """Personio's success envelope."""
    return httpx.Response(status_code, json={"success": True, "data": data})


def employee_payload(
    employee_id: int,
    first_name: str,
    last_name: str,
    department: Optional[str] = None,
    status: str = "active",
    position: Optional[str] = None,
    **extra: Any,
) -> dict[str, Any]:
    """An employee the way /v1/company/employees returns it."""
    attributes = {
        "id": {"label": "ID", "value": employee_id},
        "first_name": {"label": "First name", "value": first_name},
        "last_name": {"label": "Last name", "value": last_name},
        "email": {"label": "Email", "value": f"{first_name.lower()}@example.com"},
        "status": {"label": "Status", "value": status},
        "position": {"label": "Position", "value": position},
    }
    if department:
        attributes["department"] = {
            "label": "Department",
            "value": {
                "type": "Department",
                "attributes": {"id": sum(map(ord, department)), "name": department},
            },
        }
    for name, value in extra.items():
        attributes[name] = {"label": name, "value": value}
    return {"type": "Employee", "attributes": attributes}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def personio():
    return FakePersonio()


@pytest.fixture
def static_config():
    return PersonioConfig(static_key=STATIC_KEY, api_base_url=BASE_URL).validate()


@pytest.fixture
def oauth_config():
    return PersonioConfig(
        client_id=CLIENT_ID, client_secret=CLIENT_SECRET, api_base_url=BASE_URL
    ).validate()


@pytest_asyncio.fixture
async def context(static_config, personio, clock):
    """A fully wired context talking to the fake API with a static key."""
    ctx = PersonioContext(static_config, transport=personio.transport, clock=clock)
    yield ctx
    await ctx.aclose()
