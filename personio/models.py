# =============================================================================
# personio/models.py  -  Data Models (the "nouns" of the access-control plane)
# =============================================================================
#
# These dataclasses define the shape of every piece of state the core keeps
# between calls: the active credential, the throttle window, cache entries,
# and the uniform error descriptor that every failure collapses into.
#
# The domain records at the bottom (Employee, ...) are what the operations
# hand back to the MCP layer after reshaping raw Personio payloads.
#
# DESIGN PRINCIPLE - "No Phantom Fields":
#   A field that exists here is read somewhere.  Upstream attributes we do
#   not model explicitly go into an `extra` bucket instead of being spread
#   into the record.
# =============================================================================

from dataclasses import dataclass, field
from typing import Any, Optional


# -----------------------------------------------------------------------------
# Credentials - exactly one of these is active per server instance
# -----------------------------------------------------------------------------
@dataclass
class StaticKeyCredential:
    """A fixed API key (Personio v1 "App ID" style).  Never refreshed."""

    static_key: str


@dataclass
class ClientCredential:
    """OAuth2 client credentials plus the token they were exchanged for.

    Invariant: whenever `token` is set, `token_expiry` is set too, and the
    token must not be reused at or after that instant.
    """

    client_id: str
    client_secret: str
    token: Optional[str] = None
    issued_at: Optional[float] = None      # clock reading when the grant returned
    token_expiry: Optional[float] = None   # issued_at + lifetime - safety margin

    def is_valid(self, now: float) -> bool:
        return (
            self.token is not None
            and self.token_expiry is not None
            and now < self.token_expiry
        )

    def clear(self) -> None:
        self.token = None
        self.issued_at = None
        self.token_expiry = None


# -----------------------------------------------------------------------------
# ThrottleWindow - observability snapshot of the executor's admission state
# -----------------------------------------------------------------------------
@dataclass
class ThrottleWindow:
    """Point-in-time view of the throttle counters."""

    in_flight: int
    queued: int
    window_start: Optional[float]          # None until the first task starts
    started_in_window: int
    interval: float                        # window length in seconds
    interval_cap: int                      # max task starts per window
    concurrency_cap: int                   # max simultaneous tasks


# -----------------------------------------------------------------------------
# CacheEntry - one stored result
# -----------------------------------------------------------------------------
@dataclass
class CacheEntry:
    key: str
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


# -----------------------------------------------------------------------------
# ErrorDescriptor - the only failure shape callers ever see
# -----------------------------------------------------------------------------
@dataclass
class ErrorDescriptor:
    """Uniform description of a failed call.

    `code` comes from a closed set: VALIDATION_ERROR, AUTH_ERROR,
    HTTP_<status>, NETWORK_ERROR, UNKNOWN_ERROR.
    """

    code: str
    message: str
    details: Any = None

    def to_dict(self) -> dict:
        result = {"code": self.code, "message": self.message}
        if self.details is not None:
            result["details"] = self.details
        return result


# -----------------------------------------------------------------------------
# Employee - known fields typed, custom attributes in `extra`
# -----------------------------------------------------------------------------
# Personio returns every attribute wrapped as {"label", "value", "type"}.
# Companies add their own custom attributes ("dynamic_12345", "shirt_size"),
# so the set of keys is open-ended.  We keep the well-known ones as fields
# and everything else in `extra`, keyed by the upstream attribute name.
# -----------------------------------------------------------------------------
_KNOWN_EMPLOYEE_ATTRIBUTES = (
    "id", "first_name", "last_name", "email", "department", "position", "status",
)


def _attribute_value(attributes: dict, name: str) -> Any:
    attribute = attributes.get(name)
    if isinstance(attribute, dict):
        return attribute.get("value")
    return attribute


@dataclass
class Employee:
    """An employee record flattened for agent consumption."""

    id: Optional[int]
    first_name: Optional[str]
    last_name: Optional[str]
    email: Optional[str]
    department: Optional[str] = None
    department_id: Optional[int] = None
    position: Optional[str] = None
    status: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @classmethod
    def from_api(cls, payload: dict) -> "Employee":
        attributes = payload.get("attributes") or {}

        department_name = None
        department_id = None
        department = _attribute_value(attributes, "department")
        if isinstance(department, dict):
            department_attrs = department.get("attributes") or {}
            department_name = department_attrs.get("name")
            department_id = department_attrs.get("id")

        extra = {
            name: _attribute_value(attributes, name)
            for name in attributes
            if name not in _KNOWN_EMPLOYEE_ATTRIBUTES
        }

        return cls(
            id=_attribute_value(attributes, "id"),
            first_name=_attribute_value(attributes, "first_name"),
            last_name=_attribute_value(attributes, "last_name"),
            email=_attribute_value(attributes, "email"),
            department=department_name,
            department_id=department_id,
            position=_attribute_value(attributes, "position"),
            status=_attribute_value(attributes, "status"),
            extra=extra,
        )

    def is_active(self) -> bool:
        return (self.status or "").lower() == "active"

    def matches(self, query: str) -> bool:
        """Case-insensitive match on name, email or department."""
        needle = query.lower()
        haystack = (
            (self.first_name or "").lower(),
            (self.last_name or "").lower(),
            (self.email or "").lower(),
            (self.department or "").lower(),
            self.full_name.lower(),
        )
        return any(needle in value for value in haystack)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "department": self.department,
            "department_id": self.department_id,
            "position": self.position,
            "status": self.status,
            "extra": dict(self.extra),
        }

    def to_directory_entry(self) -> dict:
        return {
            "id": self.id,
            "name": self.full_name,
            "email": self.email,
            "department": self.department,
            "position": self.position,
            "status": self.status,
        }
