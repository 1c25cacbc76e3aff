# =============================================================================
# personio/errors.py  -  Error Taxonomy & Normalization
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Defines the closed set of error codes a caller can ever see, and the
#   ErrorNormalizer that turns any exception (ours, httpx's, pydantic's, or
#   something unexpected) into exactly one ErrorDescriptor.
#
# THE TAXONOMY:
#   VALIDATION_ERROR  - the caller sent malformed arguments
#   AUTH_ERROR        - credentials missing/invalid, or the token grant failed
#   HTTP_<status>     - Personio answered with a non-2xx status
#   NETWORK_ERROR     - the request never got an HTTP answer
#   UNKNOWN_ERROR     - anything else
#
# NORMALIZE ONCE:
#   The first component to catch a foreign exception normalizes it and
#   raises a PersonioError.  Every later layer sees a PersonioError and
#   passes it through untouched, so the descriptor is never re-wrapped.
# =============================================================================

import logging
from collections.abc import Callable, Iterable
from typing import Any, Optional

import httpx

from personio.models import ErrorDescriptor

logger = logging.getLogger(__name__)

VALIDATION_ERROR = "VALIDATION_ERROR"
AUTH_ERROR = "AUTH_ERROR"
NETWORK_ERROR = "NETWORK_ERROR"
UNKNOWN_ERROR = "UNKNOWN_ERROR"

REDACTED = "***"

# Detail keys whose values are never surfaced, matched case-insensitively as
# substrings ("access_token", "X-Personio-App-ID", "client_secret", ...).
_SENSITIVE_KEY_MARKERS = ("token", "secret", "authorization", "password", "api_key", "app-id")


class ConfigurationError(ValueError):
    """Raised at startup when the server configuration is unusable."""


class PersonioError(Exception):
    """Base class for every error that carries a normalized descriptor."""

    def __init__(self, code: str, message: str, details: Any = None):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)

    @property
    def descriptor(self) -> ErrorDescriptor:
        return ErrorDescriptor(code=self.code, message=self.message, details=self.details)

    @classmethod
    def from_descriptor(cls, descriptor: ErrorDescriptor) -> "PersonioError":
        return cls(descriptor.code, descriptor.message, descriptor.details)


class ValidationError(PersonioError):
    def __init__(self, message: str = "Invalid arguments", details: Any = None):
        super().__init__(VALIDATION_ERROR, message, details)


class AuthError(PersonioError):
    def __init__(self, message: str = "Authentication failed", details: Any = None):
        super().__init__(AUTH_ERROR, message, details)


class UpstreamHTTPError(PersonioError):
    """Personio rejected the request with an HTTP error status."""

    def __init__(self, status_code: int, message: str, details: Any = None):
        self.status_code = status_code
        super().__init__(f"HTTP_{status_code}", message, details)


class NetworkError(PersonioError):
    def __init__(self, message: str = "Network error occurred", details: Any = None):
        super().__init__(NETWORK_ERROR, message, details)


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        text = response.text
        return text or None


def _message_from_body(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if body.get("message"):
        return str(body["message"])
    return None


class ErrorNormalizer:
    """Turns arbitrary exceptions into ErrorDescriptors.

    `secrets` is a callable returning the sensitive strings currently in use
    (the bearer token, client secret, static key).  Any occurrence of those
    in a message or detail value is replaced before the descriptor leaves.
    """

    def __init__(self, secrets: Optional[Callable[[], Iterable[str]]] = None):
        self._secrets = secrets

    def normalize(self, error: BaseException) -> ErrorDescriptor:
        try:
            descriptor = self._classify(error)
            return self._redact_descriptor(descriptor)
        except Exception:
            logger.exception("Error normalization failed")
            return ErrorDescriptor(code=UNKNOWN_ERROR, message="An unknown error occurred")

    def to_exception(self, error: BaseException) -> PersonioError:
        """Normalize `error` and return a raisable PersonioError for it."""
        if isinstance(error, PersonioError):
            return error
        descriptor = self.normalize(error)
        if descriptor.code.startswith("HTTP_") and isinstance(error, httpx.HTTPStatusError):
            return UpstreamHTTPError(
                error.response.status_code, descriptor.message, descriptor.details
            )
        if descriptor.code == NETWORK_ERROR:
            return NetworkError(descriptor.message, descriptor.details)
        return PersonioError.from_descriptor(descriptor)

    def _classify(self, error: BaseException) -> ErrorDescriptor:
        # (1) already tagged with one of our codes
        if isinstance(error, PersonioError):
            return error.descriptor

        # (2) carries an HTTP response
        response = getattr(error, "response", None)
        if isinstance(response, httpx.Response):
            body = _response_body(response)
            message = _message_from_body(body) or str(error) or response.reason_phrase
            return ErrorDescriptor(
                code=f"HTTP_{response.status_code}", message=message, details=body
            )

        # (3) transport-level failure
        if isinstance(error, httpx.TransportError):
            return ErrorDescriptor(
                code=NETWORK_ERROR,
                message=str(error) or "Network error occurred",
                details={"type": type(error).__name__},
            )
        code = getattr(error, "code", None)
        if isinstance(code, str) and code:
            return ErrorDescriptor(code=code, message=str(error) or code)

        # (4) anything else
        return ErrorDescriptor(
            code=UNKNOWN_ERROR, message=str(error) or "An unknown error occurred"
        )

    def _redact_descriptor(self, descriptor: ErrorDescriptor) -> ErrorDescriptor:
        secrets = [s for s in (self._secrets() if self._secrets else ()) if s]
        return ErrorDescriptor(
            code=descriptor.code,
            message=_scrub_text(descriptor.message, secrets),
            details=_scrub(descriptor.details, secrets),
        )


def _scrub_text(text: str, secrets: list[str]) -> str:
    for secret in secrets:
        text = text.replace(secret, REDACTED)
    return text


def _is_sensitive_key(key: Any) -> bool:
    lowered = str(key).lower()
    return any(marker in lowered for marker in _SENSITIVE_KEY_MARKERS)


def _scrub(value: Any, secrets: list[str]) -> Any:
    if isinstance(value, dict):
        return {
            key: REDACTED if _is_sensitive_key(key) else _scrub(item, secrets)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_scrub(item, secrets) for item in value]
    if isinstance(value, str):
        return _scrub_text(value, secrets)
    return value
