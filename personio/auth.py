# =============================================================================
# personio/auth.py  -  Credential Broker
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Produces the auth headers for every upstream request.  Two modes:
#
#   STATIC KEY (v1 API):
#     A fixed "X-Personio-App-ID" header.  No network call, ever.
#
#   CLIENT CREDENTIALS (v2 API):
#     Exchanges client_id/client_secret for a bearer token at
#     POST /v2/auth/token, caches it, and reuses it until
#         issued_at + expires_in - safety_margin
#     The margin (default 300s) keeps us from sending a token that expires
#     while the request is on the wire.
#
# SINGLE-FLIGHT REFRESH:
#   When the token is missing or stale, many interleaved requests can notice
#   at the same moment.  Only the first one starts an acquisition task; the
#   rest await that same task and get the same token (or the same AuthError).
#   The handle is cleared as soon as the task settles, so a failed grant does
#   not block the next attempt.
# =============================================================================

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Optional, Union

import httpx

from personio.config import DEFAULT_API_BASE_URL, DEFAULT_TOKEN_SAFETY_MARGIN, PersonioConfig
from personio.errors import AuthError
from personio.models import ClientCredential, StaticKeyCredential

logger = logging.getLogger(__name__)

TOKEN_PATH = "/v2/auth/token"
REVOKE_PATH = "/v2/auth/revoke"

_JSON_HEADERS = {"Accept": "application/json", "Content-Type": "application/json"}

Credential = Union[StaticKeyCredential, ClientCredential]


class CredentialBroker:
    def __init__(
        self,
        credential: Credential,
        http: httpx.AsyncClient,
        base_url: str = DEFAULT_API_BASE_URL,
        safety_margin: float = DEFAULT_TOKEN_SAFETY_MARGIN,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.credential = credential
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._safety_margin = safety_margin
        self._clock = clock
        self._pending: Optional[asyncio.Task] = None

    @classmethod
    def from_config(
        cls,
        config: PersonioConfig,
        http: httpx.AsyncClient,
        clock: Callable[[], float] = time.monotonic,
    ) -> "CredentialBroker":
        if config.static_key:
            credential: Credential = StaticKeyCredential(static_key=config.static_key)
        else:
            credential = ClientCredential(
                client_id=config.client_id or "", client_secret=config.client_secret or ""
            )
        return cls(
            credential,
            http,
            base_url=config.api_base_url,
            safety_margin=config.token_safety_margin,
            clock=clock,
        )

    async def get_auth_headers(self) -> dict[str, str]:
        if isinstance(self.credential, StaticKeyCredential):
            return {"X-Personio-App-ID": self.credential.static_key, **_JSON_HEADERS}

        token = await self._get_access_token()
        return {"Authorization": f"Bearer {token}", **_JSON_HEADERS}

    def secrets(self) -> list[str]:
        """Sensitive strings currently held, for redaction in error output."""
        if isinstance(self.credential, StaticKeyCredential):
            return [self.credential.static_key]
        return [s for s in (self.credential.client_secret, self.credential.token) if s]

    async def revoke(self) -> None:
        """Best-effort upstream revocation; local token state is always cleared."""
        credential = self.credential
        if not isinstance(credential, ClientCredential) or credential.token is None:
            return

        token = credential.token
        try:
            response = await self._http.post(
                f"{self._base_url}{REVOKE_PATH}",
                json={"token": token},
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            )
            response.raise_for_status()
            logger.info("Access token revoked")
        except httpx.HTTPError as exc:
            logger.warning(f"Token revocation failed: {type(exc).__name__}")
        finally:
            credential.clear()

    # -------------------------------------------------------------------------
    # Token acquisition
    # -------------------------------------------------------------------------
    async def _get_access_token(self) -> str:
        credential = self.credential
        if credential.is_valid(self._clock()):
            return credential.token

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._acquire_token())
            self._pending.add_done_callback(self._settle)
        # shield: one caller giving up must not cancel the shared acquisition
        return await asyncio.shield(self._pending)

    def _settle(self, task: asyncio.Task) -> None:
        if self._pending is task:
            self._pending = None
        if not task.cancelled():
            # mark the outcome as observed even if every waiter went away
            task.exception()

    async def _acquire_token(self) -> str:
        credential = self.credential
        if not credential.client_id or not credential.client_secret:
            raise AuthError("Client ID and Client Secret are required for OAuth2 authentication")

        logger.info("Requesting new access token")
        try:
            response = await self._http.post(
                f"{self._base_url}{TOKEN_PATH}",
                json={
                    "grant_type": "client_credentials",
                    "client_id": credential.client_id,
                    "client_secret": credential.client_secret,
                },
                headers=_JSON_HEADERS,
            )
        except httpx.HTTPError as exc:
            raise AuthError(
                f"Authentication error: {type(exc).__name__}",
                details={"cause": "NETWORK_ERROR"},
            ) from exc

        body = _json_or_none(response)
        if response.is_error:
            raise AuthError(
                f"Authentication failed: {_error_message(body) or response.reason_phrase}",
                details={"status": response.status_code},
            )

        token, expires_in = _token_from_body(body)
        if not token:
            raise AuthError("Failed to obtain access token")

        issued_at = self._clock()
        lifetime = expires_in - self._safety_margin
        if lifetime <= 0:
            logger.warning(
                f"Token lifetime {expires_in}s is within the {self._safety_margin}s safety margin"
            )
            lifetime = 0.0
        credential.token = token
        credential.issued_at = issued_at
        credential.token_expiry = issued_at + lifetime
        logger.info(f"Access token acquired; reusable for {lifetime:.0f}s")
        return token


def _json_or_none(response: httpx.Response):
    try:
        return response.json()
    except ValueError:
        return None


def _error_message(body) -> Optional[str]:
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("message")
        if isinstance(error, str):
            return body.get("error_description") or error
        return body.get("message")
    return None


def _token_from_body(body) -> tuple[Optional[str], float]:
    """Accept both {"success", "data": {"token", "expires_in"}} and plain OAuth2 bodies."""
    if not isinstance(body, dict):
        return None, 0.0
    if body.get("success") is False:
        return None, 0.0
    data = body.get("data") if isinstance(body.get("data"), dict) else body
    token = data.get("token") or data.get("access_token")
    try:
        expires_in = float(data.get("expires_in") or 0)
    except (TypeError, ValueError):
        expires_in = 0.0
    return token, expires_in


