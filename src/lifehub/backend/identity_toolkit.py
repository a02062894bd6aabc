"""Async client for the Firebase Identity Toolkit REST API.

The Admin SDK can mint and verify tokens but cannot check a password, so
email/password sign-in and sign-up go through the public REST endpoints
with the project's web API key. Expired ID tokens are renewed through the
Secure Token API. Errors come back as HTTP 400 with a
``{"error": {"message": "EMAIL_EXISTS"}}`` body and are raised as
IdentityToolkitError.
"""

from __future__ import annotations

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = structlog.get_logger(__name__)

_identity_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((httpx.ConnectError, httpx.TimeoutException)),
    reraise=True,
)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1"

# ID tokens live about an hour; these codes mean "refresh and retry"
REFRESHABLE_TOKEN_ERRORS = ("TOKEN_EXPIRED", "INVALID_ID_TOKEN")


class IdentityToolkitError(Exception):
    """Identity Toolkit rejected the request (bad credentials, existing email, ...)."""

    def __init__(self, code: str, status_code: int) -> None:
        super().__init__(code)
        self.code = code
        self.status_code = status_code


class IdentityToolkitClient:
    """Password auth against Firebase Identity Toolkit.

    Args:
        api_key: Firebase web API key.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(
        self,
        api_key: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=IDENTITY_TOOLKIT_URL,
            timeout=self._timeout,
            transport=self._transport,
        )

    @_identity_retry
    async def _send(self, url: str, endpoint: str, **kwargs) -> dict:
        async with self._client() as client:
            response = await client.post(url, params={"key": self._api_key}, **kwargs)
        if response.status_code >= 400:
            try:
                code = response.json()["error"]["message"]
            except (ValueError, KeyError, TypeError):
                code = response.reason_phrase or "UNKNOWN_ERROR"
            logger.info("identity_toolkit.request_rejected", endpoint=endpoint, code=code)
            raise IdentityToolkitError(code, response.status_code)
        return response.json()

    async def _post(self, endpoint: str, payload: dict) -> dict:
        return await self._send(f"/accounts:{endpoint}", endpoint, json=payload)

    async def sign_in_with_password(self, email: str, password: str) -> dict:
        """Return ``{localId, email, idToken, refreshToken, ...}`` for valid credentials."""
        return await self._post(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )

    async def sign_up(self, email: str, password: str) -> dict:
        """Create an email/password account and return its first session."""
        return await self._post(
            "signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )

    async def lookup(self, id_token: str) -> dict | None:
        """Return the account record for a session token.

        None means the token is valid but its account is gone. A rejected
        token (``TOKEN_EXPIRED``, ``INVALID_ID_TOKEN``, ...) raises
        IdentityToolkitError.
        """
        data = await self._post("lookup", {"idToken": id_token})
        users = data.get("users") or []
        return users[0] if users else None

    async def refresh(self, refresh_token: str) -> dict:
        """Exchange a refresh token for a new ID token.

        The Secure Token API answers in snake_case; the result is returned
        with the same keys as a sign-in response.
        """
        data = await self._send(
            f"{SECURE_TOKEN_URL}/token",
            "token",
            data={"grant_type": "refresh_token", "refresh_token": refresh_token},
        )
        return {
            "localId": data["user_id"],
            "idToken": data["id_token"],
            "refreshToken": data["refresh_token"],
            "expiresIn": data["expires_in"],
        }
